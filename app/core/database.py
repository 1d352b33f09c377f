from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from app.core.config import config


# стабільні імена constraints для alembic autogenerate
NAMING_CONVENTION = {
	"ix": "ix_%(table_name)s_%(column_0_name)s",
	"uq": "uq_%(table_name)s_%(column_0_name)s",
	"fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
	"pk": "pk_%(table_name)s",
}

engine = create_async_engine(
	config.DATABASE_URL,
	echo=config.DEBUG_MODE,  # echo=True для debug (!)
	pool_pre_ping=True,
)
async_session = async_sessionmaker(
	bind=engine,
	expire_on_commit=False,
	class_=AsyncSession
)

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))
