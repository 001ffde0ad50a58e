"""
Database connection and session management.
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator
from contextlib import asynccontextmanager
from sqlalchemy.exc import OperationalError, DisconnectionError

from backfill.core.config import settings
from backfill.core.logging import get_logger

logger = get_logger(__name__)

_CONNECT_ARGS = {
    "command_timeout": 30,
    "server_settings": {
        "application_name": "backfill",
        "tcp_keepalives_idle": "600",
        "tcp_keepalives_interval": "30",
        "tcp_keepalives_count": "3",
    },
}

# Pooled engine for the FastAPI process
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_recycle=3600,
    echo=False,
    connect_args=_CONNECT_ARGS,
)

# Celery workers run each task in a fresh event loop, so pooled connections
# cannot be reused across tasks
worker_engine = create_async_engine(
    settings.DATABASE_URL,
    poolclass=NullPool,
    echo=False,
    connect_args={**_CONNECT_ARGS, "server_settings": {
        **_CONNECT_ARGS["server_settings"], "application_name": "backfill_worker"
    }},
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

WorkerSessionLocal = async_sessionmaker(
    worker_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for database models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting a request-scoped database session.

    Commits when the handler returns normally and rolls back otherwise.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, DisconnectionError) as e:
            logger.error(f"Database error: {e}")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session(session_factory: async_sessionmaker = AsyncSessionLocal):
    """
    Context manager for a database session outside of request handling.

    Commits on success, rolls back on error and always closes the session.
    Celery workers pass ``WorkerSessionLocal`` so that every connection is
    opened in the task's own event loop.
    """
    session = session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
