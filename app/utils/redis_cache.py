import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import config

import logging
logger = logging.getLogger("[LEDGER]")


# створюємо клієнт
redis_client = redis.from_url(
    f"redis://{config.REDIS_HOST}:{config.REDIS_PORT}/{config.REDIS_DB}",
    encoding="utf-8",
    decode_responses=True,
)


class SummaryCache:
	"""
	Кеш balance summary користувача (JSON), скидається після кожного запису в ledger.
	Redis недоступний - кеш пропускається, джерело даних завжди база.
	"""

	def __init__(self, client=None, ttl: int | None = None):
		self.client = client if client is not None else redis_client
		self.ttl = ttl if ttl is not None else config.CACHE_TTL_SECONDS

	async def get_summary(self, user_id: str) -> str | None:
		try:
			return await self.client.get(summary_key(user_id))
		except RedisError as error:
			logger.warning("Summary cache read failed for user %s: %s", user_id, error)
			return None

	async def set_summary(self, user_id: str, value: str):
		try:
			await self.client.set(summary_key(user_id), value, ex=self.ttl)
		except RedisError as error:
			logger.warning("Summary cache write failed for user %s: %s", user_id, error)

	async def invalidate(self, *user_ids: str):
		keys = [summary_key(user_id) for user_id in set(user_ids)]
		if not keys:
			return 0
		try:
			return await self.client.delete(*keys)
		except RedisError as error:
			# застарілий summary живе не довше за TTL
			logger.warning("Summary cache invalidation failed for %s: %s", keys, error)
			return 0


def summary_key(user_id: str) -> str:
	return f"user:{user_id}:credit_summary"
