import enum

from sqlalchemy import (
	Column, Integer, String, Boolean, DateTime, DECIMAL, ForeignKey,
	Computed, Enum, CheckConstraint, func
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class CreditStatus(enum.Enum):
	ACTIVE = "active"
	USED = "used"            # повністю використано
	EXPIRED = "expired"      # лише через auto_expire_credits
	CANCELLED = "cancelled"  # лише через block_user


class ReferralCredit(Base):
	__tablename__ = "referral_credits"

	id = Column(Integer, primary_key=True)
	user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
	credit_type = Column(String(48), nullable=False)  # "referral_bonus", "referee_bonus", ...

	credit_amount = Column(DECIMAL(12, 2), nullable=False)  # не змінюється
	used_amount = Column(DECIMAL(12, 2), nullable=False, default=0)
	# рахує база даних, у коді лише читаємо
	remaining_amount = Column(
		DECIMAL(12, 2), Computed("credit_amount - used_amount", persisted=True)
	)

	status = Column(Enum(CreditStatus), nullable=False, default=CreditStatus.ACTIVE)
	expiry_date = Column(DateTime(timezone=True), nullable=False, index=True)
	is_expired = Column(Boolean, nullable=False, default=False)
	expired_at = Column(DateTime(timezone=True), nullable=True)

	created_at = Column(DateTime(timezone=True), server_default=func.now())
	updated_at = Column(
		DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
	)

	user = relationship("User", back_populates="credits")
	transactions = relationship("CreditTransaction", back_populates="credit")

	__table_args__ = (
		CheckConstraint("used_amount <= credit_amount", name="ck_referral_credits_not_overspent"),
		CheckConstraint("used_amount >= 0", name="ck_referral_credits_used_non_negative"),
	)

	# remaining_amount повертається одразу після INSERT
	__mapper_args__ = {"eager_defaults": True}
