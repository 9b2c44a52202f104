# DB connections

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from visitor_stats.core.config import settings
from visitor_stats.models.visit import Base
import structlog

logger = structlog.get_logger()


def _engine_options(url: str) -> dict:
    # SQLite serializes writers on the file lock, a pool only holds stale connections
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {"pool_size": 20, "max_overflow": 0}


async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url)
)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncSession:
    """Dependency for getting async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables():
    """Create visitor tables if they do not exist (dev / first deploy)"""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("tables_created", tables=sorted(Base.metadata.tables.keys()))
