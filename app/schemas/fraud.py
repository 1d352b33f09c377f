from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.fraud import FraudCheckType, RiskLevel, FraudResolution


# **************    окремі перевірки (tagged variant у check_details)
class FraudCheckBase(BaseModel):
	success: bool = Field(default=True, exclude=True)
	risk_score: int = Field(..., ge=0, le=100)
	risk_level: RiskLevel

	model_config = ConfigDict(use_enum_values=True)


# кілька реєстрацій з однієї IP
class IpVelocityCheck(FraudCheckBase):
	type: Literal["ip_velocity"] = "ip_velocity"
	is_suspicious: bool
	signup_count: int


# кілька акаунтів з одного пристрою
class DeviceFingerprintCheck(FraudCheckBase):
	type: Literal["device_fingerprint"] = "device_fingerprint"
	is_suspicious: bool
	account_count: int


# підозріло висока конверсія лінка
class ConversionRateCheck(FraudCheckBase):
	type: Literal["conversion_rate"] = "conversion_rate"
	is_suspicious: bool
	conversion_rate: float  # %, 2 знаки після крапки
	total_clicks: int
	total_conversions: int


# новий акаунт
class AccountAgeCheck(FraudCheckBase):
	type: Literal["account_age"] = "account_age"
	meets_minimum: bool
	account_age_days: int


# ручне блокування адміністратором
class UserBlockCheck(FraudCheckBase):
	type: Literal["block"] = "block"
	reason: str
	links_deactivated: int
	cancelled_credit_ids: List[int] = []


FraudCheckDetail = Annotated[
	Union[
		IpVelocityCheck, DeviceFingerprintCheck, ConversionRateCheck, AccountAgeCheck,
		UserBlockCheck,
	],
	Field(discriminator="type"),
]


class FraudCheckDetails(BaseModel):
	checks: List[FraudCheckDetail] = []
	checks_performed: int = 0
	total_risk_score: int = 0
	average_risk_score: int = 0


# **************    comprehensive
class FraudCheckRequest(BaseModel):
	user_id: Optional[str] = None
	referral_link_id: Optional[int] = None
	conversion_id: Optional[int] = None
	ip_address: Optional[str] = None
	user_agent: Optional[str] = None
	device_type: Optional[str] = None


class ComprehensiveCheckResponse(BaseModel):
	success: bool = True
	fraud_check_id: int
	risk_score: int
	risk_level: RiskLevel
	is_flagged: bool
	is_blocked: bool
	requires_manual_review: bool
	checks: List[FraudCheckDetail] = []

	model_config = ConfigDict(use_enum_values=True)


# **************    review
class FraudCheckOut(BaseModel):
	id: int
	check_type: FraudCheckType
	user_id: Optional[str] = None
	referral_link_id: Optional[int] = None
	conversion_id: Optional[int] = None
	risk_score: int
	risk_level: RiskLevel
	is_flagged: bool
	is_blocked: bool
	requires_manual_review: bool
	check_details: Optional[dict] = None
	resolution: Optional[FraudResolution] = None
	reviewed_by: Optional[str] = None
	reviewed_at: Optional[datetime] = None
	notes: Optional[str] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class FlaggedUser(BaseModel):
	id: str
	email: Optional[str] = None
	first_name: Optional[str] = None
	last_name: Optional[str] = None

	model_config = ConfigDict(from_attributes=True)


class FlaggedConversion(BaseModel):
	id: int
	status: str
	referrer_credit_amount: Optional[Decimal] = None
	referee_credit_amount: Optional[Decimal] = None

	model_config = ConfigDict(from_attributes=True)

	@field_serializer("referrer_credit_amount", "referee_credit_amount")
	def format_amount(self, v: Optional[Decimal], _info):
		if v is None:
			return None
		return float(round(v, 2))


class FlaggedCheck(FraudCheckOut):
	user: Optional[FlaggedUser] = None
	conversion: Optional[FlaggedConversion] = None


class FlaggedConversionsResponse(BaseModel):
	success: bool = True
	flagged_count: int
	flagged: List[FlaggedCheck]


class FraudResolveRequest(BaseModel):
	resolution: str  # "approved" | "rejected"
	reviewer_id: str
	notes: str = ""


class FraudResolveResponse(BaseModel):
	success: bool = True
	fraud_check: FraudCheckOut


class BlockUserRequest(BaseModel):
	user_id: str
	reason: str


class BlockUserResponse(BaseModel):
	success: bool = True
	message: str
	links_deactivated: int
	credits_cancelled: int
	fraud_check_id: int
