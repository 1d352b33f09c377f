from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


class CreditTransactionOut(BaseModel):
	id: int
	credit_id: int
	transaction_type: str
	amount: Decimal
	applied_to_type: Optional[str] = None
	applied_to_id: Optional[str] = None
	description: Optional[str] = None
	refunded_at: Optional[datetime] = None
	created_at: Optional[datetime] = None

	# з referral_credits
	credit_type: Optional[str] = None
	credit_amount: Optional[Decimal] = None

	model_config = ConfigDict(
		from_attributes=True,
		use_enum_values = True
	)

	@field_serializer("amount", "credit_amount")
	def format_amount(self, v: Optional[Decimal], _info):
		if v is None:
			return None
		return float(round(v, 2)) # 2 знаки після крапки


class TransactionHistoryResponse(BaseModel):
	success: bool = True
	transactions: List[CreditTransactionOut]
