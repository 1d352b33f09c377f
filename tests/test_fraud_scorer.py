from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.models import (
	FraudCheck, FraudCheckType, FraudResolution, RiskLevel, ReferralLink,
	ReferralConversion, CreditStatus
)
from app.schemas.fraud import FraudCheckRequest
from app.services.credit_ledger import ReferralCreditService
from app.services.fraud_scorer import ReferralFraudService, get_risk_level
from app.utils.redis_cache import SummaryCache

from conftest import (
	DownRedis, create_user, create_credit, create_link, create_clicks, get_credit,
	get_credit_transactions
)


async def get_fraud_checks(session_factory):
	async with session_factory() as session:
		result = await session.execute(select(FraudCheck).order_by(FraudCheck.id))
		return result.scalars().all()


@pytest.mark.parametrize(
	"score, level",
	[
		(0, RiskLevel.LOW),
		(59, RiskLevel.LOW),
		(60, RiskLevel.MEDIUM),
		(79, RiskLevel.MEDIUM),
		(80, RiskLevel.HIGH),
		(94, RiskLevel.HIGH),
		(95, RiskLevel.CRITICAL),
		(100, RiskLevel.CRITICAL),
	],
)
def test_get_risk_level(score, level):
	assert get_risk_level(score) == level


@pytest.mark.asyncio
async def test_ip_velocity_over_threshold(session_factory, fraud):
	await create_user(session_factory)
	link_id = await create_link(session_factory)
	await create_clicks(session_factory, link_id, 5, ip_address="10.0.0.7")
	# не враховуються: поза вікном, без реєстрації, інша IP
	await create_clicks(session_factory, link_id, 3, ip_address="10.0.0.7", hours_ago=30)
	await create_clicks(session_factory, link_id, 4, ip_address="10.0.0.7", converted=False)
	await create_clicks(session_factory, link_id, 6, ip_address="10.0.0.8")

	result = await fraud.check_ip_velocity("10.0.0.7")

	assert result.success is True
	assert result.is_suspicious is True
	assert result.signup_count == 5
	assert result.risk_score == 70
	assert result.risk_level == "medium"


@pytest.mark.asyncio
async def test_ip_velocity_within_threshold(session_factory, fraud):
	await create_user(session_factory)
	link_id = await create_link(session_factory)
	await create_clicks(session_factory, link_id, 3, ip_address="10.0.0.7")

	result = await fraud.check_ip_velocity("10.0.0.7")

	assert result.is_suspicious is False
	assert result.risk_score == 0
	assert result.risk_level == "low"


@pytest.mark.asyncio
async def test_device_fingerprint(session_factory, fraud):
	await create_user(session_factory)
	link_id = await create_link(session_factory)
	await create_clicks(session_factory, link_id, 4, user_agent="UA-1", device_type="mobile")
	await create_clicks(session_factory, link_id, 4, user_agent="UA-1", device_type="desktop")
	await create_clicks(
		session_factory, link_id, 2, user_agent="UA-1", device_type="mobile", hours_ago=24 * 8
	)

	result = await fraud.check_device_fingerprint("UA-1", "mobile")

	assert result.is_suspicious is True
	assert result.account_count == 4
	assert result.risk_score == 70


@pytest.mark.asyncio
async def test_conversion_rate(session_factory, fraud):
	await create_user(session_factory)
	suspicious = await create_link(session_factory, code="HOT", clicks=10, conversions=8)
	normal = await create_link(session_factory, code="OK", clicks=10, conversions=3)
	no_clicks = await create_link(session_factory, code="NEW")

	hot = await fraud.check_conversion_rate(suspicious)
	ok = await fraud.check_conversion_rate(normal)
	empty = await fraud.check_conversion_rate(no_clicks)
	missing = await fraud.check_conversion_rate(404)

	assert hot.is_suspicious is True
	assert hot.conversion_rate == 80.0
	assert hot.risk_score == 70
	assert ok.is_suspicious is False
	assert ok.risk_score == 0
	assert empty.conversion_rate == 0
	assert empty.risk_score == 0
	assert missing.success is False
	assert missing.error == "Referral link not found"


@pytest.mark.asyncio
async def test_account_age(session_factory, fraud):
	await create_user(session_factory, "new_user", age_days=10)
	await create_user(session_factory, "old_user", age_days=45)

	young = await fraud.check_account_age("new_user")
	old = await fraud.check_account_age("old_user")
	missing = await fraud.check_account_age("ghost")

	assert young.meets_minimum is False
	assert young.account_age_days == 10
	assert young.risk_score == 50
	assert old.meets_minimum is True
	assert old.risk_score == 0
	assert missing.success is False
	assert missing.error == "User not found"


@pytest.mark.asyncio
async def test_comprehensive_check_account_age_only(session_factory, fraud):
	await create_user(session_factory, "new_user", age_days=10)

	result = await fraud.comprehensive_fraud_check(FraudCheckRequest(user_id="new_user"))

	assert result.success is True
	assert result.risk_score == 50
	assert result.risk_level == "low"
	assert result.is_flagged is False
	assert result.requires_manual_review is False
	assert result.is_blocked is False
	assert [check.type for check in result.checks] == ["account_age"]

	checks = await get_fraud_checks(session_factory)
	assert len(checks) == 1
	assert checks[0].id == result.fraud_check_id
	assert checks[0].check_type == FraudCheckType.COMPREHENSIVE
	assert checks[0].check_details["checks_performed"] == 1
	assert checks[0].check_details["checks"][0]["type"] == "account_age"
	assert checks[0].check_details["checks"][0]["account_age_days"] == 10


@pytest.mark.asyncio
async def test_comprehensive_check_without_signals_is_persisted(session_factory, fraud):
	result = await fraud.comprehensive_fraud_check(FraudCheckRequest())

	assert result.success is True
	assert result.risk_score == 0
	assert result.risk_level == "low"
	assert result.checks == []
	checks = await get_fraud_checks(session_factory)
	assert len(checks) == 1
	assert checks[0].check_details["checks_performed"] == 0


@pytest.mark.asyncio
async def test_comprehensive_check_skips_failed_checks(session_factory, fraud):
	await create_user(session_factory, "new_user", age_days=10)

	result = await fraud.comprehensive_fraud_check(
		FraudCheckRequest(user_id="new_user", referral_link_id=404)
	)

	assert result.risk_score == 50
	assert [check.type for check in result.checks] == ["account_age"]


@pytest.mark.asyncio
async def test_comprehensive_check_averages_and_flags(session_factory, fraud):
	await create_user(session_factory, "referrer", age_days=200)
	link_id = await create_link(session_factory, "referrer", clicks=10, conversions=8)
	await create_clicks(session_factory, link_id, 5, ip_address="10.1.1.1", user_agent="UA-X")

	result = await fraud.comprehensive_fraud_check(FraudCheckRequest(
		referral_link_id=link_id,
		ip_address="10.1.1.1",
		user_agent="UA-X",
		device_type="mobile",
	))

	# ip 70, device 40 + 15 * 3 = 85, conversion 70 -> 75
	assert [check.risk_score for check in result.checks] == [70, 85, 70]
	assert result.risk_score == 75
	assert result.risk_level == "medium"
	assert result.is_flagged is True
	assert result.requires_manual_review is False
	assert result.is_blocked is False


@pytest.mark.asyncio
async def test_critical_check_is_blocked_and_listed_for_review(session_factory, fraud):
	await create_user(session_factory, "referee", age_days=0)
	link_id = await create_link(session_factory, "referee")
	await create_clicks(session_factory, link_id, 10, ip_address="10.9.9.9", user_agent="UA-BOT")
	async with session_factory() as session:
		conversion = ReferralConversion(
			referral_link_id=link_id,
			referrer_id="referee",
			referee_id="referee",
			status="pending",
			referrer_credit_amount=Decimal("10.00"),
			referee_credit_amount=Decimal("5.00"),
		)
		session.add(conversion)
		await session.commit()
		conversion_id = conversion.id

	result = await fraud.comprehensive_fraud_check(FraudCheckRequest(
		user_id="referee",
		conversion_id=conversion_id,
		ip_address="10.9.9.9",
		user_agent="UA-BOT",
		device_type="mobile",
	))

	# ip 100, device 100, age 70 -> 90
	assert result.risk_score == 90
	assert result.risk_level == "high"
	assert result.requires_manual_review is True
	assert result.is_blocked is False

	flagged = await fraud.get_flagged_conversions()
	assert flagged.success is True
	assert flagged.flagged_count == 1
	assert flagged.flagged[0].id == result.fraud_check_id
	assert flagged.flagged[0].user.email == "referee@example.com"
	assert flagged.flagged[0].conversion.id == conversion_id
	assert flagged.flagged[0].conversion.referrer_credit_amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_resolve_fraud_check_only_once(session_factory, fraud):
	await create_user(session_factory, "referee", age_days=0)
	link_id = await create_link(session_factory, "referee")
	await create_clicks(session_factory, link_id, 10, ip_address="10.9.9.9")
	check = await fraud.comprehensive_fraud_check(
		FraudCheckRequest(user_id="referee", ip_address="10.9.9.9")
	)
	assert check.requires_manual_review is True

	invalid = await fraud.resolve_fraud_check(check.fraud_check_id, "maybe", "admin_1")
	resolved = await fraud.resolve_fraud_check(
		check.fraud_check_id, "approved", "admin_1", "Family members"
	)
	again = await fraud.resolve_fraud_check(check.fraud_check_id, "rejected", "admin_2")
	missing = await fraud.resolve_fraud_check(999, "approved", "admin_1")

	assert invalid.success is False
	assert resolved.success is True
	assert resolved.fraud_check.resolution == "approved"
	assert resolved.fraud_check.reviewed_by == "admin_1"
	assert resolved.fraud_check.reviewed_at is not None
	assert again.success is False
	assert "already resolved" in again.error
	assert missing.success is False

	stored = (await get_fraud_checks(session_factory))[0]
	assert stored.resolution == FraudResolution.APPROVED
	assert stored.reviewed_by == "admin_1"
	assert stored.notes == "Family members"

	flagged = await fraud.get_flagged_conversions()
	assert flagged.flagged_count == 0


@pytest.mark.asyncio
async def test_block_user(session_factory, fraud, ledger):
	await create_user(session_factory, "cheater")
	await create_link(session_factory, "cheater", code="C1")
	await create_link(session_factory, "cheater", code="C2")
	active = await create_credit(session_factory, "cheater", amount="50.00")
	partly_used = await create_credit(session_factory, "cheater", amount="30.00", used="10.00")
	used = await create_credit(
		session_factory, "cheater", amount="20.00", used="20.00", status=CreditStatus.USED
	)

	result = await fraud.block_user("cheater", "Self-referral ring")

	assert result.success is True
	assert result.links_deactivated == 2
	assert result.credits_cancelled == 2

	async with session_factory() as session:
		links = (await session.execute(select(ReferralLink))).scalars().all()
	assert all(link.is_active is False for link in links)

	for credit_id in (active, partly_used):
		assert (await get_credit(session_factory, credit_id)).status == CreditStatus.CANCELLED
	assert (await get_credit(session_factory, used)).status == CreditStatus.USED

	# скасування не пише у credit_transactions
	assert await get_credit_transactions(session_factory) == []

	block_check = (await get_fraud_checks(session_factory))[0]
	assert block_check.id == result.fraud_check_id
	assert block_check.check_type == FraudCheckType.MANUAL_REVIEW
	assert block_check.risk_score == 100
	assert block_check.risk_level == RiskLevel.CRITICAL
	assert block_check.is_blocked is True
	assert block_check.resolution == FraudResolution.REJECTED
	assert block_check.notes == "User blocked: Self-referral ring"
	details = block_check.check_details
	assert details["checks_performed"] == 1
	assert details["checks"][0]["type"] == "block"
	assert details["checks"][0]["reason"] == "Self-referral ring"
	assert details["checks"][0]["links_deactivated"] == 2
	assert sorted(details["checks"][0]["cancelled_credit_ids"]) == sorted([active, partly_used])

	available = await ledger.get_available_credits("cheater")
	assert available.total_available == Decimal("0.00")
	applied = await ledger.apply_credits("cheater", Decimal("20.00"), "processing_fees", "fee_1")
	assert applied.credits_applied == Decimal("0.00")


@pytest.mark.asyncio
async def test_refund_after_block_keeps_credit_cancelled(session_factory, cache):
	await create_user(session_factory, "cheater")
	credit_id = await create_credit(session_factory, "cheater", amount="50.00")

	async with session_factory() as session:
		ledger = ReferralCreditService(session, cache)
		applied = await ledger.apply_credits("cheater", Decimal("20.00"), "processing_fees", "fee_1")

	async with session_factory() as session:
		await ReferralFraudService(session, cache).block_user("cheater", "chargeback abuse")

	async with session_factory() as session:
		ledger = ReferralCreditService(session, cache)
		refund = await ledger.refund_credit(applied.applied_credits[0].transaction_id)

	assert refund.success is True
	credit = await get_credit(session_factory, credit_id)
	assert credit.used_amount == Decimal("0.00")
	assert credit.status == CreditStatus.CANCELLED


@pytest.mark.asyncio
async def test_account_created_in_future_counts_as_new(session_factory, fraud):
	await create_user(session_factory, "skewed", age_days=-40)

	age = await fraud.check_account_age("skewed")
	result = await fraud.comprehensive_fraud_check(FraudCheckRequest(user_id="skewed"))

	assert age.account_age_days == 0
	assert age.risk_score == 70
	assert result.success is True
	assert result.risk_score == 70
	assert result.risk_level == "medium"


@pytest.mark.asyncio
async def test_block_user_rolls_back_when_write_fails(session_factory, fraud, monkeypatch):
	await create_user(session_factory, "cheater")
	await create_link(session_factory, "cheater")
	credit_id = await create_credit(session_factory, "cheater", amount="50.00")

	async def failing_flush(*args, **kwargs):
		# links і credits вже оновлені, запис fraud check падає
		raise OperationalError("INSERT INTO referral_fraud_checks", {}, Exception("disk I/O error"))

	monkeypatch.setattr(fraud.session, "flush", failing_flush)

	result = await fraud.block_user("cheater", "Self-referral ring")

	assert result.success is False
	async with session_factory() as session:
		link = (await session.execute(select(ReferralLink))).scalar_one()
	assert link.is_active is True
	assert (await get_credit(session_factory, credit_id)).status == CreditStatus.ACTIVE
	assert await get_fraud_checks(session_factory) == []


@pytest.mark.asyncio
async def test_block_user_when_redis_is_down(session_factory):
	await create_user(session_factory, "cheater")
	credit_id = await create_credit(session_factory, "cheater", amount="50.00")

	async with session_factory() as session:
		fraud = ReferralFraudService(session, SummaryCache(client=DownRedis()))
		result = await fraud.block_user("cheater", "Chargeback abuse")

	assert result.success is True
	assert result.credits_cancelled == 1
	assert (await get_credit(session_factory, credit_id)).status == CreditStatus.CANCELLED
