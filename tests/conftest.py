import os
import sys
import tempfile
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

# тестове оточення: до першого імпорту app.core.config
TEST_ENV = {
	"POSTGRES_USER": "test",
	"POSTGRES_PASSWORD": "test",
	"POSTGRES_DB": "referral_credits_test",
	"POSTGRES_HOST": "localhost",
	"POSTGRES_PORT": "5432",
	"ADMIN_TOKEN": "test-admin-token",
	"SERVICE_TOKEN": "test-service-token",
	"USER_TOKEN_BEARER": "test-user-token",
	"REDIS_HOST": "localhost",
	"REDIS_PORT": "6379",
	"REDIS_DB": "0",
	"CACHE_TTL_SECONDS": "60",
	"LOG_DIR": str(Path(tempfile.gettempdir()) / "referral-credits-test-logs"),
}
for key, value in TEST_ENV.items():
	os.environ.setdefault(key, value)

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
	create_async_engine, AsyncSession, async_sessionmaker
)

from app.main import app
from app.core.database import Base
from app.core.dependencies import get_session, get_summary_cache
from app.models import (
	User, ReferralLink, ReferralClick, ReferralCredit, CreditStatus,
	CreditTransaction
)
from app.services.credit_ledger import ReferralCreditService
from app.services.fraud_scorer import ReferralFraudService
from app.utils.common import utcnow
from app.utils.redis_cache import SummaryCache


class FakeRedis:
	"""Мінімальний async-двійник redis клієнта для SummaryCache"""

	def __init__(self):
		self.store = {}

	async def get(self, key):
		return self.store.get(key)

	async def set(self, key, value, ex=None):
		self.store[key] = value

	async def delete(self, *keys):
		return sum(1 for key in keys if self.store.pop(key, None) is not None)


class DownRedis:
	"""Redis, що недоступний: кожна команда падає з ConnectionError"""

	async def get(self, key):
		raise RedisConnectionError("redis down")

	async def set(self, key, value, ex=None):
		raise RedisConnectionError("redis down")

	async def delete(self, *keys):
		raise RedisConnectionError("redis down")


# окрема SQLite база для кожного тесту
@pytest_asyncio.fixture
async def engine(tmp_path):
	engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	yield engine

	await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
	return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def fake_redis():
	return FakeRedis()


@pytest_asyncio.fixture
async def cache(fake_redis):
	return SummaryCache(client=fake_redis, ttl=60)


@pytest_asyncio.fixture
async def ledger(session_factory, cache):
	async with session_factory() as session:
		yield ReferralCreditService(session, cache)


@pytest_asyncio.fixture
async def fraud(session_factory, cache):
	async with session_factory() as session:
		yield ReferralFraudService(session, cache)


# **************    seed helpers
async def create_user(session_factory, user_id="user_1", age_days=100, **fields):
	async with session_factory() as session:
		session.add(User(
			id=user_id,
			email=fields.get("email", f"{user_id}@example.com"),
			first_name=fields.get("first_name", "Test"),
			last_name=fields.get("last_name", "User"),
			created_at=utcnow() - timedelta(days=age_days, hours=1),
		))
		await session.commit()
	return user_id


async def create_credit(
	session_factory,
	user_id="user_1",
	amount="100.00",
	expires_in_days=30,
	used="0.00",
	status=CreditStatus.ACTIVE,
	credit_type="referral_bonus",
	is_expired=False,
) -> int:
	async with session_factory() as session:
		credit = ReferralCredit(
			user_id=user_id,
			credit_type=credit_type,
			credit_amount=Decimal(amount),
			used_amount=Decimal(used),
			status=status,
			expiry_date=utcnow() + timedelta(days=expires_in_days),
			is_expired=is_expired,
		)
		session.add(credit)
		await session.commit()
		return credit.id


async def create_link(
	session_factory, user_id="user_1", code="REF1", clicks=0, conversions=0
) -> int:
	async with session_factory() as session:
		link = ReferralLink(
			user_id=user_id,
			code=code,
			is_active=True,
			total_clicks=clicks,
			total_conversions=conversions,
		)
		session.add(link)
		await session.commit()
		return link.id


async def create_clicks(
	session_factory,
	link_id,
	count,
	ip_address="10.0.0.1",
	user_agent="Mozilla/5.0 (Linux; Android 14)",
	device_type="mobile",
	converted=True,
	hours_ago=1,
):
	async with session_factory() as session:
		for _ in range(count):
			session.add(ReferralClick(
				referral_link_id=link_id,
				ip_address=ip_address,
				user_agent=user_agent,
				device_type=device_type,
				converted_to_signup=converted,
				clicked_at=utcnow() - timedelta(hours=hours_ago),
			))
		await session.commit()


async def get_credit(session_factory, credit_id) -> ReferralCredit:
	async with session_factory() as session:
		return await session.get(ReferralCredit, credit_id)


async def get_credit_transactions(session_factory, **filters):
	async with session_factory() as session:
		query = select(CreditTransaction).order_by(CreditTransaction.id)
		for column, value in filters.items():
			query = query.where(getattr(CreditTransaction, column) == value)
		result = await session.execute(query)
		return result.scalars().all()


# Override get_session / get_summary_cache на час тесту
@pytest_asyncio.fixture
async def async_client(session_factory, cache):
	async def get_test_session():
		async with session_factory() as session:
			yield session

	app.dependency_overrides[get_session] = get_test_session
	app.dependency_overrides[get_summary_cache] = lambda: cache

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as client:
		yield client

	app.dependency_overrides.clear()
