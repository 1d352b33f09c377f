from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class User(Base):
	__tablename__ = "users"

	id = Column(String, primary_key=True, index=True)
	email = Column(String, nullable=True)
	first_name = Column(String, nullable=True)
	last_name = Column(String, nullable=True)
	created_at = Column(DateTime(timezone=True), server_default=func.now())

	# ORM-зв’язки
	credits = relationship("ReferralCredit", back_populates="user")
	referral_links = relationship("ReferralLink", back_populates="user")
