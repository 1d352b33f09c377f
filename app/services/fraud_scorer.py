from datetime import timedelta
from typing import List, Optional, Union

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.config import config
from app.models import (
	ReferralClick, ReferralLink, ReferralCredit, CreditStatus, User,
	FraudCheck, FraudCheckType, RiskLevel, FraudResolution
)
from app.schemas.base import OperationFailed
from app.schemas.fraud import (
	IpVelocityCheck, DeviceFingerprintCheck, ConversionRateCheck, AccountAgeCheck,
	FraudCheckDetails, FraudCheckRequest, ComprehensiveCheckResponse,
	FraudCheckOut, FlaggedCheck, FlaggedConversionsResponse, FraudResolveResponse,
	BlockUserResponse, UserBlockCheck
)
from app.utils.common import utcnow, as_utc, round_half_up
from app.utils.logging import get_extra_data_log
from app.utils.redis_cache import SummaryCache

import logging
logger = logging.getLogger("[FRAUD]")


# правила виявлення fraud
MAX_SIGNUPS_PER_WINDOW = 3       # реєстрацій з однієї IP за вікно
MAX_ACCOUNTS_PER_DEVICE = 2      # акаунтів з одного пристрою за 7 днів
DEVICE_WINDOW_DAYS = 7
SUSPICIOUS_CONVERSION_RATE = 60  # %, занадто висока конверсія

# пороги risk score
MEDIUM_RISK = 60
HIGH_RISK = 80
CRITICAL_RISK = 95


def get_risk_level(score) -> RiskLevel:
	if score >= CRITICAL_RISK:
		return RiskLevel.CRITICAL
	if score >= HIGH_RISK:
		return RiskLevel.HIGH
	if score >= MEDIUM_RISK:
		return RiskLevel.MEDIUM
	return RiskLevel.LOW


class ReferralFraudService:
	"""
	Виявлення fraud у referral програмі.

	Окремі перевірки (IP, пристрій, конверсія, вік акаунта) дають risk score 0..100,
	comprehensive_fraud_check усереднює їх і зберігає рішення у referral_fraud_checks.
	"""

	def __init__(self, session: AsyncSession, cache: Optional[SummaryCache] = None):
		self.session = session
		self.cache = cache
		self.min_account_age_days = config.MIN_ACCOUNT_AGE_DAYS

	async def _fail(self, message: str) -> OperationFailed:
		await self.session.rollback()
		return OperationFailed(error=message)

	async def check_ip_velocity(
		self, ip_address: str, hours: int = 24
	) -> Union[IpVelocityCheck, OperationFailed]:
		time_window = utcnow() - timedelta(hours=hours)
		try:
			signup_count = await self.session.scalar(
				select(func.count())
				.select_from(ReferralClick)
				.where(
					ReferralClick.ip_address == ip_address,
					ReferralClick.converted_to_signup.is_(True),
					ReferralClick.clicked_at >= time_window,
				)
			)
		except Exception as error:
			logger.error("Error checking IP velocity: %s", error)
			return await self._fail(str(error))

		signup_count = signup_count or 0
		is_suspicious = signup_count > MAX_SIGNUPS_PER_WINDOW

		risk_score = 0
		if is_suspicious:
			risk_score = min(100, 50 + (signup_count - MAX_SIGNUPS_PER_WINDOW) * 10)

		return IpVelocityCheck(
			is_suspicious=is_suspicious,
			signup_count=signup_count,
			risk_score=risk_score,
			risk_level=get_risk_level(risk_score),
		)

	async def check_device_fingerprint(
		self, user_agent: str, device_type: str, days: int = DEVICE_WINDOW_DAYS
	) -> Union[DeviceFingerprintCheck, OperationFailed]:
		time_window = utcnow() - timedelta(days=days)
		try:
			account_count = await self.session.scalar(
				select(func.count())
				.select_from(ReferralClick)
				.where(
					ReferralClick.user_agent == user_agent,
					ReferralClick.device_type == device_type,
					ReferralClick.converted_to_signup.is_(True),
					ReferralClick.clicked_at >= time_window,
				)
			)
		except Exception as error:
			logger.error("Error checking device fingerprint: %s", error)
			return await self._fail(str(error))

		account_count = account_count or 0
		is_suspicious = account_count > MAX_ACCOUNTS_PER_DEVICE

		risk_score = 0
		if is_suspicious:
			risk_score = min(100, 40 + (account_count - MAX_ACCOUNTS_PER_DEVICE) * 15)

		return DeviceFingerprintCheck(
			is_suspicious=is_suspicious,
			account_count=account_count,
			risk_score=risk_score,
			risk_level=get_risk_level(risk_score),
		)

	async def check_conversion_rate(
		self, referral_link_id: int
	) -> Union[ConversionRateCheck, OperationFailed]:
		try:
			referral_link = await self.session.get(
				ReferralLink, referral_link_id, populate_existing=True
			)
		except Exception as error:
			logger.error("Error checking conversion rate: %s", error)
			return await self._fail(str(error))

		if not referral_link:
			return OperationFailed(error="Referral link not found")

		total_clicks = referral_link.total_clicks or 0
		total_conversions = referral_link.total_conversions or 0
		conversion_rate = (
			total_conversions / total_clicks * 100 if total_clicks > 0 else 0
		)
		is_suspicious = conversion_rate > SUSPICIOUS_CONVERSION_RATE

		risk_score = 0
		if is_suspicious:
			risk_score = min(
				100, round_half_up(50 + (conversion_rate - SUSPICIOUS_CONVERSION_RATE))
			)

		return ConversionRateCheck(
			is_suspicious=is_suspicious,
			conversion_rate=round(conversion_rate, 2),
			total_clicks=total_clicks,
			total_conversions=total_conversions,
			risk_score=risk_score,
			risk_level=get_risk_level(risk_score),
		)

	async def check_account_age(
		self, user_id: str
	) -> Union[AccountAgeCheck, OperationFailed]:
		try:
			created_at = await self.session.scalar(
				select(User.created_at).where(User.id == user_id)
			)
		except Exception as error:
			logger.error("Error checking account age: %s", error)
			return await self._fail(str(error))

		if created_at is None:
			return OperationFailed(error="User not found")

		# повні доби з моменту реєстрації, не менше 0
		account_age = max(0, (utcnow() - as_utc(created_at)).days)
		meets_minimum = account_age >= self.min_account_age_days

		risk_score = 0
		if not meets_minimum:
			risk_score = max(0, 70 - account_age * 2)

		return AccountAgeCheck(
			meets_minimum=meets_minimum,
			account_age_days=account_age,
			risk_score=risk_score,
			risk_level=get_risk_level(risk_score),
		)

	async def comprehensive_fraud_check(
		self, params: FraudCheckRequest
	) -> Union[ComprehensiveCheckResponse, OperationFailed]:
		checks: List = []

		# запускаємо лише ті перевірки, для яких є вхідні дані
		if params.ip_address:
			checks.append(await self.check_ip_velocity(params.ip_address))

		if params.user_agent and params.device_type:
			checks.append(
				await self.check_device_fingerprint(params.user_agent, params.device_type)
			)

		if params.referral_link_id:
			checks.append(await self.check_conversion_rate(params.referral_link_id))

		if params.user_id:
			checks.append(await self.check_account_age(params.user_id))

		# неуспішні перевірки не враховуються
		checks = [check for check in checks if check.success]

		checks_performed = len(checks)
		total_risk_score = sum(check.risk_score for check in checks)
		average_risk_score = (
			round_half_up(total_risk_score / checks_performed) if checks_performed else 0
		)
		risk_level = get_risk_level(average_risk_score)
		is_flagged = average_risk_score >= MEDIUM_RISK
		requires_manual_review = average_risk_score >= HIGH_RISK
		is_blocked = average_risk_score >= CRITICAL_RISK

		details = FraudCheckDetails(
			checks=checks,
			checks_performed=checks_performed,
			total_risk_score=total_risk_score,
			average_risk_score=average_risk_score,
		)

		try:
			fraud_check = FraudCheck(
				check_type=FraudCheckType.COMPREHENSIVE,
				user_id=params.user_id,
				referral_link_id=params.referral_link_id,
				conversion_id=params.conversion_id,
				risk_score=average_risk_score,
				risk_level=risk_level,
				is_flagged=is_flagged,
				is_blocked=is_blocked,
				requires_manual_review=requires_manual_review,
				check_details=details.model_dump(mode="json"),
				created_at=utcnow(),
			)
			self.session.add(fraud_check)
			await self.session.flush()

			logger.info(
				f"Fraud check completed: risk {risk_level.value} ({average_risk_score}/100). FraudCheck:",
				extra=get_extra_data_log(fraud_check)
			)

			fraud_check_id = fraud_check.id
			await self.session.commit()
		except Exception as error:
			logger.error("Error saving comprehensive fraud check: %s", error)
			return await self._fail(str(error))

		return ComprehensiveCheckResponse(
			fraud_check_id=fraud_check_id,
			risk_score=average_risk_score,
			risk_level=risk_level,
			is_flagged=is_flagged,
			is_blocked=is_blocked,
			requires_manual_review=requires_manual_review,
			checks=checks,
		)

	async def get_flagged_conversions(
		self
	) -> Union[FlaggedConversionsResponse, OperationFailed]:
		try:
			result = await self.session.execute(
				select(FraudCheck)
				.options(
					selectinload(FraudCheck.user),
					selectinload(FraudCheck.conversion),
				)
				.where(
					FraudCheck.requires_manual_review.is_(True),
					FraudCheck.reviewed_at.is_(None),
				)
				.order_by(FraudCheck.created_at.desc(), FraudCheck.id.desc())
				.execution_options(populate_existing=True)
			)
			flagged = result.scalars().all()
		except Exception as error:
			logger.error("Error getting flagged conversions: %s", error)
			return await self._fail(str(error))

		return FlaggedConversionsResponse(
			flagged_count=len(flagged),
			flagged=[FlaggedCheck.model_validate(check) for check in flagged]
		)

	async def resolve_fraud_check(
		self,
		check_id: int,
		resolution: str,
		reviewer_id: str,
		notes: str = "",
	) -> Union[FraudResolveResponse, OperationFailed]:
		try:
			resolution = FraudResolution(resolution)
		except ValueError:
			return OperationFailed(
				error=f"Invalid resolution '{resolution}': expected 'approved' or 'rejected'"
			)

		try:
			result = await self.session.execute(
				select(FraudCheck)
				.where(FraudCheck.id == check_id)
				.with_for_update()
				.execution_options(populate_existing=True)
			)
			fraud_check: FraudCheck | None = result.scalar_one_or_none()

			if not fraud_check:
				return await self._fail(f"Fraud check {check_id} not found")

			# рішення приймається один раз
			if fraud_check.reviewed_at is not None:
				return await self._fail(
					f"Fraud check {check_id} already resolved "
					f"({fraud_check.resolution.value if fraud_check.resolution else 'unknown'})"
				)

			fraud_check.resolution = resolution
			fraud_check.reviewed_by = reviewer_id
			fraud_check.reviewed_at = utcnow()
			fraud_check.notes = notes
			await self.session.flush()

			logger.info(
				f"Fraud check resolved: {resolution.value} by {reviewer_id}. FraudCheck:",
				extra=get_extra_data_log(fraud_check)
			)

			fraud_check_out = FraudCheckOut.model_validate(fraud_check)
			await self.session.commit()
		except Exception as error:
			logger.error("Error resolving fraud check %s: %s", check_id, error)
			return await self._fail(str(error))

		return FraudResolveResponse(fraud_check=fraud_check_out)

	async def block_user(
		self, user_id: str, reason: str
	) -> Union[BlockUserResponse, OperationFailed]:
		"""
		Блокування користувача у referral програмі.
		Лінки, кредити та fraud check - одна транзакція: або все, або нічого.
		Скасовані кредити не логуються у credit_transactions.
		"""
		now = utcnow()
		try:
			# деактивувати всі referral links
			links = await self.session.execute(
				update(ReferralLink)
				.where(ReferralLink.user_id == user_id)
				.values(is_active=False)
				.returning(ReferralLink.id)
				.execution_options(synchronize_session=False)
			)
			links_deactivated = len(links.all())

			# скасувати активні кредити (залишок згорає)
			cancelled = await self.session.execute(
				update(ReferralCredit)
				.where(
					ReferralCredit.user_id == user_id,
					ReferralCredit.status == CreditStatus.ACTIVE,
				)
				.values(status=CreditStatus.CANCELLED, updated_at=now)
				.returning(ReferralCredit.id)
				.execution_options(synchronize_session=False)
			)
			cancelled_ids = list(cancelled.scalars().all())

			block_check = UserBlockCheck(
				reason=reason,
				links_deactivated=links_deactivated,
				cancelled_credit_ids=cancelled_ids,
				risk_score=100,
				risk_level=RiskLevel.CRITICAL,
			)

			fraud_check = FraudCheck(
				check_type=FraudCheckType.MANUAL_REVIEW,
				user_id=user_id,
				risk_score=100,
				risk_level=RiskLevel.CRITICAL,
				is_flagged=True,
				is_blocked=True,
				requires_manual_review=False,
				check_details=FraudCheckDetails(
					checks=[block_check],
					checks_performed=1,
					total_risk_score=block_check.risk_score,
					average_risk_score=block_check.risk_score,
				).model_dump(mode="json"),
				resolution=FraudResolution.REJECTED,
				notes=f"User blocked: {reason}",
				created_at=now,
			)
			self.session.add(fraud_check)
			await self.session.flush()

			logger.warning(
				f"User {user_id} blocked from referral program: {reason}. FraudCheck:",
				extra=get_extra_data_log(fraud_check)
			)

			fraud_check_id = fraud_check.id
			await self.session.commit()
		except Exception as error:
			logger.error("Error blocking user %s, rolled back: %s", user_id, error)
			return await self._fail(str(error))

		if self.cache is not None:
			# помилки Redis SummaryCache лише логує
			await self.cache.invalidate(user_id)

		return BlockUserResponse(
			message="User blocked from referral program",
			links_deactivated=links_deactivated,
			credits_cancelled=len(cancelled_ids),
			fraud_check_id=fraud_check_id,
		)
