import os
import tempfile
from pathlib import Path

# Settings are read at import time, configure before importing visitor_stats
_db_dir = Path(tempfile.mkdtemp(prefix="visitor_stats_tests_"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir / 'visitor_stats.db'}"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTO_CREATE_TABLES"] = "false"

import pytest_asyncio
from visitor_stats.core.database import AsyncSessionLocal, async_engine
from visitor_stats.models.visit import Base

ADMIN_KEY = "test-admin-key"


@pytest_asyncio.fixture
async def fresh_db():
    """Empty visitor tables for every test"""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await async_engine.dispose()


@pytest_asyncio.fixture
async def db_session(fresh_db):
    async with AsyncSessionLocal() as session:
        yield session
