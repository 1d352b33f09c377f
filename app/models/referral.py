from sqlalchemy import (
	Column, Integer, String, Boolean, DateTime, DECIMAL, ForeignKey, func
)
from sqlalchemy.orm import relationship

from app.core.database import Base


# Referral links / clicks / conversions: лише читання у цьому сервісі
class ReferralLink(Base):
	__tablename__ = "referral_links"

	id = Column(Integer, primary_key=True)
	user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
	code = Column(String(32), unique=True, nullable=False)
	is_active = Column(Boolean, default=True, nullable=False)
	total_clicks = Column(Integer, default=0, nullable=False)
	total_conversions = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime(timezone=True), server_default=func.now())

	user = relationship("User", back_populates="referral_links")
	clicks = relationship("ReferralClick", back_populates="referral_link")


class ReferralClick(Base):
	__tablename__ = "referral_clicks"

	id = Column(Integer, primary_key=True)
	referral_link_id = Column(Integer, ForeignKey("referral_links.id"), nullable=False)
	ip_address = Column(String(64), nullable=True, index=True)
	user_agent = Column(String, nullable=True)
	device_type = Column(String(32), nullable=True)
	converted_to_signup = Column(Boolean, default=False, nullable=False)
	clicked_at = Column(DateTime(timezone=True), server_default=func.now())

	referral_link = relationship("ReferralLink", back_populates="clicks")


class ReferralConversion(Base):
	__tablename__ = "referral_conversions"

	id = Column(Integer, primary_key=True)
	referral_link_id = Column(Integer, ForeignKey("referral_links.id"), nullable=True)
	referrer_id = Column(String, ForeignKey("users.id"), nullable=False)
	referee_id = Column(String, ForeignKey("users.id"), nullable=False)
	status = Column(String(24), default="pending", nullable=False)
	referrer_credit_amount = Column(DECIMAL(12, 2), default=0)
	referee_credit_amount = Column(DECIMAL(12, 2), default=0)
	created_at = Column(DateTime(timezone=True), server_default=func.now())
