# Щоденний cron job: згоряння кредитів + список попереджень
# crontab: 0 3 * * * cd /srv/referral-credits && python expire_credits.py
import asyncio
import logging

from app.core.database import async_session, engine
from app.core.logging_config import setup_logging
from app.services.credit_ledger import ReferralCreditService
from app.utils.redis_cache import SummaryCache

logger = logging.getLogger("[LEDGER]")


async def run_expiry_job(session_factory=async_session, cache=None, warning_days: int = 7):
    async with session_factory() as session:
        service = ReferralCreditService(session, cache)

        expired = await service.auto_expire_credits()
        if not expired.success:
            logger.error("Expiry sweep failed: %s", expired.error)

        warnings = await service.send_expiration_warnings(warning_days)
        if not warnings.success:
            logger.error("Expiration warnings failed: %s", warnings.error)

    return expired, warnings


async def main():
    setup_logging()
    try:
        expired, warnings = await run_expiry_job(cache=SummaryCache())
        if expired.success:
            logger.info("Expiry job: %s credits expired", expired.expired_count)
        if warnings.success:
            logger.info("Expiry job: %s warnings prepared", warnings.warnings_sent)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
