from decimal import Decimal

from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    POSTGRES_HOST: str
    POSTGRES_PORT: str

    ADMIN_TOKEN: str
    SERVICE_TOKEN: str
    USER_TOKEN_BEARER: str

    DEBUG_MODE: bool = False
    LOG_DIR: str = "logs"

    REDIS_HOST: str
    REDIS_PORT: str
    REDIS_DB: int
    CACHE_TTL_SECONDS: int

    # правила кредитів
    MIN_PAYMENT_THRESHOLD: Decimal = Decimal("5.00")
    MAX_CREDIT_PER_TRANSACTION: Decimal = Decimal("200.00")
    EXPIRING_SOON_DAYS: int = 30

    # правила fraud
    MIN_ACCOUNT_AGE_DAYS: int = 30

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    class Config:
        env_file = ".env"


config = AppConfig()
