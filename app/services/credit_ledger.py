from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import config
from app.models import (
	ReferralCredit, CreditStatus, CreditTransaction, CreditTransactionType, User
)
from app.schemas.base import OperationFailed
from app.schemas.credits import (
	AvailableCreditsResponse, CreditOut, CreditsApplyResponse, AppliedCredit,
	CreditsRefundResponse, CreditsExpireResponse, ExpiredCredit,
	ExpirationWarningsResponse, ExpirationNotification,
	BalanceSummary, BalanceSummaryResponse, CreditTypeBreakdown
)
from app.schemas.serializers import serialize_transaction
from app.schemas.transactions import TransactionHistoryResponse
from app.utils.common import utcnow, as_utc, to_money
from app.utils.idempotency import check_idempotency
from app.utils.logging import get_extra_data_log
from app.utils.redis_cache import SummaryCache

import logging
logger = logging.getLogger("[LEDGER]")


ZERO = Decimal("0.00")


class ReferralCreditService:
	"""
	Referral credit ledger: баланс, списання, повернення та згоряння кредитів.

	Кожен метод повертає відповідь з полем `success` і не кидає винятків назовні.
	Всі записи однієї операції виконуються в одній транзакції сесії
	(commit або rollback повністю).
	"""

	def __init__(self, session: AsyncSession, cache: Optional[SummaryCache] = None):
		self.session = session
		self.cache = cache

		# максимум кредитів на одну транзакцію
		self.max_credit_per_transaction = to_money(config.MAX_CREDIT_PER_TRANSACTION)
		# мінімальна сума транзакції
		self.min_payment_threshold = to_money(config.MIN_PAYMENT_THRESHOLD)

	async def _fail(self, message: str) -> OperationFailed:
		await self.session.rollback()
		return OperationFailed(error=message)

	async def _invalidate(self, *user_ids: str):
		if self.cache is not None and user_ids:
			await self.cache.invalidate(*user_ids)

	def _available_query(self, user_id: str):
		# найраніше згоряння - першим (FIFO by expiry)
		return (
			select(ReferralCredit)
			.where(
				ReferralCredit.user_id == user_id,
				ReferralCredit.status == CreditStatus.ACTIVE,
				ReferralCredit.remaining_amount > 0,
				ReferralCredit.expiry_date >= utcnow(),
			)
			.order_by(ReferralCredit.expiry_date.asc(), ReferralCredit.id.asc())
			# credits оновлюються через UPDATE, identity map може бути застарілим
			.execution_options(populate_existing=True)
		)

	async def get_available_credits(
		self, user_id: str
	) -> Union[AvailableCreditsResponse, OperationFailed]:
		try:
			result = await self.session.execute(self._available_query(user_id))
			credits = result.scalars().all()
		except Exception as error:
			logger.error("Error getting available credits for user %s: %s", user_id, error)
			return await self._fail(str(error))

		total_available = sum((to_money(c.remaining_amount) for c in credits), ZERO)

		return AvailableCreditsResponse(
			total_available=total_available,
			credits=[CreditOut.model_validate(c) for c in credits]
		)

	async def apply_credits(
		self,
		user_id: str,
		transaction_amount,
		transaction_type: str,
		transaction_id: str,
	) -> Union[CreditsApplyResponse, OperationFailed]:
		transaction_amount = to_money(transaction_amount)

		if transaction_amount < self.min_payment_threshold:
			return OperationFailed(
				error=f"Minimum transaction amount is ${self.min_payment_threshold}"
			)

		try:
			# SELECT ... FOR UPDATE: кредити користувача заблоковані до commit
			result = await self.session.execute(
				self._available_query(user_id).with_for_update()
			)
			credits = result.scalars().all()

			# Перевіряємо ідемпотентність вже під блокуванням:
			# паралельний запит з тим самим transaction_id чекає на commit першого
			is_duplicate, previous = await check_idempotency(
				self.session, user_id, transaction_type, transaction_id
			)
		except Exception as error:
			# збій читання ledger зупиняє операцію, а не означає "0 кредитів"
			logger.error("Error reading credits for user %s: %s", user_id, error)
			return await self._fail(str(error))

		previous_credits = self._previous_applied(previous)
		already_applied = sum((c.amount_used for c in previous_credits), ZERO)

		if is_duplicate:
			logger.warning(
				"Credits already applied to %s %s: ", transaction_type, transaction_id,
				extra=get_extra_data_log(previous[0][0])
			)
			await self.session.rollback()
			return self._previous_apply_result(transaction_amount, previous_credits)

		total_available = sum((to_money(c.remaining_amount) for c in credits), ZERO)

		# частину списань повернули (refund): докриваємо лише різницю
		max_applicable = min(
			min(transaction_amount, self.max_credit_per_transaction) - already_applied,
			total_available,
		)

		if max_applicable <= 0:
			await self.session.rollback()
			if previous_credits:
				return self._previous_apply_result(transaction_amount, previous_credits)
			return CreditsApplyResponse(
				credits_applied=ZERO,
				remaining_amount=transaction_amount,
				message="No credits available"
			)

		remaining_to_apply = max_applicable
		applied_credits = list(previous_credits)
		now = utcnow()

		try:
			# atomic operation (!) here: credits + credit_transactions
			for credit in credits:
				if remaining_to_apply <= 0:
					break

				amount_to_use = min(remaining_to_apply, to_money(credit.remaining_amount))

				# умовне списання: 0 рядків - кредит змінився, беремо наступний
				result = await self.session.execute(
					update(ReferralCredit)
					.where(
						ReferralCredit.id == credit.id,
						ReferralCredit.status == CreditStatus.ACTIVE,
						ReferralCredit.remaining_amount >= amount_to_use,
					)
					.values(
						used_amount=ReferralCredit.used_amount + amount_to_use,
						updated_at=now,
					)
					.execution_options(synchronize_session=False)
				)
				if result.rowcount == 0:
					logger.warning(
						"Credit %s changed concurrently, skipped", credit.id
					)
					continue

				await self.session.execute(
					update(ReferralCredit)
					.where(
						ReferralCredit.id == credit.id,
						ReferralCredit.remaining_amount <= 0,
					)
					.values(status=CreditStatus.USED)
					.execution_options(synchronize_session=False)
				)

				# транзакція
				new_tx = CreditTransaction(
					user_id=user_id,
					credit_id=credit.id,
					transaction_type=CreditTransactionType.USED,
					amount=amount_to_use,
					applied_to_type=transaction_type,
					applied_to_id=transaction_id,
					description=f"Credit applied to {transaction_type}",
					created_at=now,
				)
				self.session.add(new_tx)
				await self.session.flush()

				logger.info(
					"Credit applied. Transaction:",
					extra=get_extra_data_log(new_tx)
				)

				applied_credits.append(AppliedCredit(
					credit_id=credit.id,
					amount_used=amount_to_use,
					credit_type=credit.credit_type,
					transaction_id=new_tx.id,
				))
				remaining_to_apply -= amount_to_use

			await self.session.commit()
		except Exception as error:
			logger.error(
				"Error applying credits for user %s, rolled back: %s", user_id, error
			)
			return await self._fail(str(error))

		await self._invalidate(user_id)

		newly_applied = max_applicable - remaining_to_apply
		total_applied = already_applied + newly_applied
		remaining_amount = transaction_amount - total_applied

		logger.info(
			"Credits applied: $%s to %s %s for user %s",
			newly_applied, transaction_type, transaction_id, user_id
		)

		return CreditsApplyResponse(
			credits_applied=total_applied,
			remaining_amount=remaining_amount,
			applied_credits=applied_credits,
			message=f"${total_applied:.2f} in credits applied"
		)

	@staticmethod
	def _previous_applied(previous) -> list[AppliedCredit]:
		return [
			AppliedCredit(
				credit_id=tx.credit_id,
				amount_used=to_money(tx.amount),
				credit_type=credit_type,
				transaction_id=tx.id,
			)
			for tx, credit_type in previous
		]

	@staticmethod
	def _previous_apply_result(
		transaction_amount: Decimal, applied_credits: list[AppliedCredit]
	) -> CreditsApplyResponse:
		# Повертаємо той самий результат, що був раніше
		total_applied = sum((c.amount_used for c in applied_credits), ZERO)
		return CreditsApplyResponse(
			credits_applied=total_applied,
			remaining_amount=transaction_amount - total_applied,
			applied_credits=applied_credits,
			message=f"${total_applied:.2f} in credits already applied"
		)

	async def refund_credit(
		self, transaction_id: int
	) -> Union[CreditsRefundResponse, OperationFailed]:
		now = utcnow()
		try:
			result = await self.session.execute(
				select(CreditTransaction)
				.where(
					CreditTransaction.id == transaction_id,
					CreditTransaction.transaction_type == CreditTransactionType.USED,
				)
				.with_for_update()
			)
			used_tx: CreditTransaction | None = result.scalar_one_or_none()

			if not used_tx:
				return await self._fail("Transaction not found")

			# одне списання - одне повернення
			if used_tx.refunded_at is not None:
				return await self._fail(
					f"Transaction {transaction_id} already refunded"
				)

			credit = await self.session.get(
				ReferralCredit, used_tx.credit_id,
				with_for_update=True, populate_existing=True
			)
			if not credit:
				return await self._fail("Credit not found")

			refund_amount = to_money(used_tx.amount)
			if credit.status == CreditStatus.CANCELLED:
				# заблокований користувач: кредит не відновлюємо
				new_status = CreditStatus.CANCELLED
			elif credit.is_expired:
				new_status = CreditStatus.EXPIRED
			else:
				new_status = CreditStatus.ACTIVE

			await self.session.execute(
				update(ReferralCredit)
				.where(ReferralCredit.id == credit.id)
				.values(
					used_amount=ReferralCredit.used_amount - refund_amount,
					status=new_status,
					updated_at=now,
				)
				.execution_options(synchronize_session=False)
			)

			used_tx.refunded_at = now
			refund_tx = CreditTransaction(
				user_id=used_tx.user_id,
				credit_id=credit.id,
				transaction_type=CreditTransactionType.REFUNDED,
				amount=refund_amount,
				applied_to_type=used_tx.applied_to_type,
				applied_to_id=used_tx.applied_to_id,
				description=f"Refund for transaction {transaction_id}",
				created_at=now,
			)
			self.session.add(refund_tx)
			await self.session.flush()

			logger.info(
				"Credit refunded. Transaction:",
				extra=get_extra_data_log(refund_tx)
			)

			user_id = used_tx.user_id
			await self.session.commit()
		except Exception as error:
			logger.error("Error refunding credit transaction %s: %s", transaction_id, error)
			return await self._fail(str(error))

		await self._invalidate(user_id)

		return CreditsRefundResponse(
			refund_amount=refund_amount,
			message="Credit refunded successfully"
		)

	async def auto_expire_credits(self) -> Union[CreditsExpireResponse, OperationFailed]:
		"""
		Щоденний cron job.
		Єдиний умовний UPDATE ... RETURNING визначає, які кредити згоріли,
		тому кредит, списаний паралельно, не буде позначено як expired.
		"""
		now = utcnow()
		try:
			result = await self.session.execute(
				update(ReferralCredit)
				.where(
					ReferralCredit.status == CreditStatus.ACTIVE,
					ReferralCredit.expiry_date < now,
				)
				.values(
					status=CreditStatus.EXPIRED,
					is_expired=True,
					expired_at=now,
					updated_at=now,
				)
				.returning(
					ReferralCredit.id,
					ReferralCredit.user_id,
					ReferralCredit.remaining_amount,
				)
				.execution_options(synchronize_session=False)
			)
			rows = result.all()

			expired_credits = []
			for credit_id, user_id, remaining in rows:
				expire_tx = CreditTransaction(
					user_id=user_id,
					credit_id=credit_id,
					transaction_type=CreditTransactionType.EXPIRED,
					amount=to_money(remaining),
					description="Credit expired",
					created_at=now,
				)
				self.session.add(expire_tx)
				expired_credits.append(
					ExpiredCredit(id=credit_id, user_id=user_id, amount=to_money(remaining))
				)

			await self.session.commit()
		except Exception as error:
			logger.error("Error expiring credits: %s", error)
			return await self._fail(str(error))

		if not expired_credits:
			return CreditsExpireResponse(
				expired_count=0, message="No credits to expire"
			)

		await self._invalidate(*(c.user_id for c in expired_credits))
		logger.info("Expired %s credits", len(expired_credits))

		return CreditsExpireResponse(
			expired_count=len(expired_credits),
			expired_credits=expired_credits
		)

	async def send_expiration_warnings(
		self, days_before_expiry: int = 7
	) -> Union[ExpirationWarningsResponse, OperationFailed]:
		now = utcnow()
		warning_date = now + timedelta(days=days_before_expiry)
		try:
			result = await self.session.execute(
				select(ReferralCredit, User)
				.join(User, ReferralCredit.user_id == User.id)
				.where(
					ReferralCredit.status == CreditStatus.ACTIVE,
					ReferralCredit.remaining_amount > 0,
					ReferralCredit.expiry_date <= warning_date,
					ReferralCredit.expiry_date >= now,
				)
				.order_by(ReferralCredit.expiry_date.asc())
				.execution_options(populate_existing=True)
			)
			rows = result.all()
		except Exception as error:
			logger.error("Error collecting expiration warnings: %s", error)
			return await self._fail(str(error))

		# групуємо по користувачу
		notifications: dict[str, ExpirationNotification] = {}
		for credit, user in rows:
			remaining = to_money(credit.remaining_amount)
			notification = notifications.get(credit.user_id)
			if notification is None:
				notifications[credit.user_id] = ExpirationNotification(
					user_id=credit.user_id,
					email=user.email,
					first_name=user.first_name,
					total_expiring=remaining,
					expiry_date=as_utc(credit.expiry_date),
					days_remaining=days_before_expiry,
				)
			else:
				notification.total_expiring += remaining

		logger.info("%s expiration warnings to send", len(notifications))

		return ExpirationWarningsResponse(
			warnings_sent=len(notifications),
			notifications=list(notifications.values())
		)

	async def get_balance_summary(
		self, user_id: str
	) -> Union[BalanceSummaryResponse, OperationFailed]:
		if self.cache is not None:
			cached = await self.cache.get_summary(user_id)
			if cached:
				try:
					return BalanceSummaryResponse(
						summary=BalanceSummary.model_validate_json(cached)
					)
				except ValidationError as error:
					# зіпсований запис у кеші - рахуємо з бази
					logger.warning("Invalid cached summary for user %s: %s", user_id, error)

		try:
			result = await self.session.execute(
				select(ReferralCredit).where(ReferralCredit.user_id == user_id)
				.execution_options(populate_existing=True)
			)
			credits = result.scalars().all()
		except Exception as error:
			logger.error("Error getting balance summary for user %s: %s", user_id, error)
			return await self._fail(str(error))

		summary = self.summarize(credits)

		if self.cache is not None:
			await self.cache.set_summary(user_id, summary.model_dump_json())

		return BalanceSummaryResponse(summary=summary)

	@staticmethod
	def summarize(credits) -> BalanceSummary:
		expiring_window = utcnow() + timedelta(days=config.EXPIRING_SOON_DAYS)
		summary = BalanceSummary()
		by_type = defaultdict(CreditTypeBreakdown)

		for credit in credits:
			amount = to_money(credit.credit_amount)
			used = to_money(credit.used_amount)
			remaining = to_money(credit.remaining_amount)

			summary.total_earned += amount
			summary.total_used += used

			if credit.status == CreditStatus.ACTIVE:
				summary.total_available += remaining
				summary.active_credits += 1

				if as_utc(credit.expiry_date) <= expiring_window:
					summary.expiring_soon += remaining
			elif credit.status == CreditStatus.EXPIRED:
				summary.total_expired += remaining

			breakdown = by_type[credit.credit_type]
			breakdown.earned += amount
			breakdown.used += used
			if credit.status == CreditStatus.ACTIVE:
				breakdown.available += remaining

		summary.by_type = dict(by_type)
		return summary

	async def get_transaction_history(
		self, user_id: str, limit: int = 50
	) -> Union[TransactionHistoryResponse, OperationFailed]:
		try:
			result = await self.session.execute(
				select(
					CreditTransaction,
					ReferralCredit.credit_type,
					ReferralCredit.credit_amount,
				)
				.join(ReferralCredit, CreditTransaction.credit_id == ReferralCredit.id)
				.where(CreditTransaction.user_id == user_id)
				.order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
				.limit(limit)
			)
			rows = result.all()
		except Exception as error:
			logger.error("Error getting transaction history for user %s: %s", user_id, error)
			return await self._fail(str(error))

		return TransactionHistoryResponse(
			transactions=[
				serialize_transaction(tx, credit_type, credit_amount)
				for tx, credit_type, credit_amount in rows
			]
		)
