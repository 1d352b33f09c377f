from fastapi import Header, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import config
from app.core.database import async_session
from app.services.credit_ledger import ReferralCreditService
from app.services.fraud_scorer import ReferralFraudService
from app.utils.redis_cache import SummaryCache


# Dependency для отримання сесії
async def get_session()-> AsyncSession:
    async with async_session() as session:
        yield session


# Dependency: перевірка адмін токену
def access_admin(x_admin_token: str = Header(...)):
    if x_admin_token != config.ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid admin token")


# Dependency: перевірка internal токену
def access_internal(x_service_token: str = Header(...)):
    if x_service_token != config.SERVICE_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid service token")


security = HTTPBearer()

# Dependency: перевірка user токену
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    x_user_id: str = Header(...),
):
    token = credentials.credentials
    if token != config.USER_TOKEN_BEARER:
        raise HTTPException(status_code=403, detail="Invalid user token")
    return x_user_id  # JWT видає auth-сервіс, тут лише id користувача


# Dependency: Redis кеш balance summary
def get_summary_cache() -> SummaryCache:
    return SummaryCache()


# Dependency: credit ledger із Redis кеш
def get_credit_service(
    session: AsyncSession = Depends(get_session),
    cache: SummaryCache = Depends(get_summary_cache),
) -> ReferralCreditService:
    return ReferralCreditService(session, cache)


# Dependency: fraud scoring
def get_fraud_service(
    session: AsyncSession = Depends(get_session),
    cache: SummaryCache = Depends(get_summary_cache),
) -> ReferralFraudService:
    return ReferralFraudService(session, cache)
