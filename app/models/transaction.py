import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, DECIMAL, Enum, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class CreditTransactionType(enum.Enum):
    USED = "used"            # списання кредиту
    REFUNDED = "refunded"    # повернення
    EXPIRED = "expired"      # закінчився термін дії


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    credit_id = Column(Integer, ForeignKey("referral_credits.id"), nullable=False, index=True)

    transaction_type = Column(Enum(CreditTransactionType), nullable=False)
    amount = Column(DECIMAL(12, 2), nullable=False)  # завжди додатня сума

    # бізнес-транзакція, до якої застосовано кредит (напр. fee payment)
    applied_to_type = Column(String(48), nullable=True)
    applied_to_id = Column(String, nullable=True, index=True)

    description = Column(String, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)  # лише для "used"
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    credit = relationship("ReferralCredit", back_populates="transactions")
