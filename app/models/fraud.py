import enum

from sqlalchemy import (
	Column, Integer, String, Boolean, DateTime, JSON, ForeignKey, Enum, func
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class FraudCheckType(enum.Enum):
	COMPREHENSIVE = "comprehensive"
	MANUAL_REVIEW = "manual_review"


class RiskLevel(enum.Enum):
	LOW = "low"
	MEDIUM = "medium"
	HIGH = "high"
	CRITICAL = "critical"


class FraudResolution(enum.Enum):
	APPROVED = "approved"
	REJECTED = "rejected"


class FraudCheck(Base):
	__tablename__ = "referral_fraud_checks"

	id = Column(Integer, primary_key=True)
	check_type = Column(Enum(FraudCheckType), nullable=False)

	# лише посилання, без каскадного видалення
	user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
	referral_link_id = Column(Integer, ForeignKey("referral_links.id"), nullable=True)
	conversion_id = Column(Integer, ForeignKey("referral_conversions.id"), nullable=True)

	risk_score = Column(Integer, nullable=False, default=0)  # 0..100
	risk_level = Column(Enum(RiskLevel), nullable=False)
	is_flagged = Column(Boolean, nullable=False, default=False)
	is_blocked = Column(Boolean, nullable=False, default=False)
	requires_manual_review = Column(Boolean, nullable=False, default=False)
	check_details = Column(JSON, default=dict)  # {"checks": [...], "checks_performed": ...}

	resolution = Column(Enum(FraudResolution), nullable=True)
	reviewed_by = Column(String, nullable=True)
	reviewed_at = Column(DateTime(timezone=True), nullable=True)
	notes = Column(String, nullable=True)
	created_at = Column(DateTime(timezone=True), server_default=func.now())

	user = relationship("User")
	conversion = relationship("ReferralConversion")
