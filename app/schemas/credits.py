from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.credits import CreditStatus


def _money(v: Optional[Decimal]):
	if v is None:
		return None
	return float(round(v, 2)) # 2 знаки після крапки


class CreditOut(BaseModel):
	id: int
	user_id: str
	credit_type: str
	credit_amount: Decimal
	used_amount: Decimal
	remaining_amount: Decimal
	status: CreditStatus
	expiry_date: datetime
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True, use_enum_values=True)

	@field_serializer("credit_amount", "used_amount", "remaining_amount")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class AvailableCreditsResponse(BaseModel):
	success: bool = True
	total_available: Decimal
	credits: List[CreditOut]

	@field_serializer("total_available")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


# **************    apply
class CreditsApplyRequest(BaseModel):
	user_id: str
	transaction_amount: Decimal = Field(..., gt=0)
	transaction_type: str  # напр. "processing_fees", "late_fees"
	transaction_id: str


class AppliedCredit(BaseModel):
	credit_id: int
	amount_used: Decimal
	credit_type: str
	transaction_id: int  # id запису у credit_transactions

	@field_serializer("amount_used")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class CreditsApplyResponse(BaseModel):
	success: bool = True
	credits_applied: Decimal
	remaining_amount: Decimal  # скільки ще треба сплатити іншим способом
	applied_credits: List[AppliedCredit] = []
	message: str

	@field_serializer("credits_applied", "remaining_amount")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


# **************    refund
class CreditsRefundRequest(BaseModel):
	transaction_id: int


class CreditsRefundResponse(BaseModel):
	success: bool = True
	refund_amount: Decimal
	message: str

	@field_serializer("refund_amount")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


# **************    expiry
class ExpiredCredit(BaseModel):
	id: int
	user_id: str
	amount: Decimal  # залишок, що згорів

	@field_serializer("amount")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class CreditsExpireResponse(BaseModel):
	success: bool = True
	expired_count: int
	expired_credits: List[ExpiredCredit] = []
	message: Optional[str] = None


class ExpirationNotification(BaseModel):
	user_id: str
	email: Optional[str] = None
	first_name: Optional[str] = None
	total_expiring: Decimal
	expiry_date: datetime  # найближча дата
	days_remaining: int

	@field_serializer("total_expiring")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class ExpirationWarningsResponse(BaseModel):
	success: bool = True
	warnings_sent: int
	notifications: List[ExpirationNotification] = []


# **************    summary
class CreditTypeBreakdown(BaseModel):
	earned: Decimal = Decimal("0.00")
	used: Decimal = Decimal("0.00")
	available: Decimal = Decimal("0.00")

	@field_serializer("earned", "used", "available")
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class BalanceSummary(BaseModel):
	total_earned: Decimal = Decimal("0.00")
	total_used: Decimal = Decimal("0.00")
	total_available: Decimal = Decimal("0.00")
	total_expired: Decimal = Decimal("0.00")
	active_credits: int = 0
	expiring_soon: Decimal = Decimal("0.00")  # протягом EXPIRING_SOON_DAYS
	by_type: Dict[str, CreditTypeBreakdown] = {}

	@field_serializer(
		"total_earned", "total_used", "total_available",
		"total_expired", "expiring_soon"
	)
	def format_amount(self, v: Decimal, _info):
		return _money(v)


class BalanceSummaryResponse(BaseModel):
	success: bool = True
	summary: BalanceSummary
