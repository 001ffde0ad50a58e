import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backfill.core.config import settings
from backfill.core.database import Base
import backfill.models.database  # noqa: F401  registers every table on Base.metadata


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine so that separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'imports.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def cloud_mode(monkeypatch):
    """Enable quota and historical window enforcement."""
    monkeypatch.setattr(settings, "IS_CLOUD", True)
