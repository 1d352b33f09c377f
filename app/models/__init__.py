from app.models.user import User
from app.models.referral import ReferralLink, ReferralClick, ReferralConversion
from app.models.credits import ReferralCredit, CreditStatus
from app.models.transaction import CreditTransaction, CreditTransactionType
from app.models.fraud import (
	FraudCheck, FraudCheckType, RiskLevel, FraudResolution
)
