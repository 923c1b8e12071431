"""
Async engine and session helpers.

Production runs on PostgreSQL through asyncpg; tests and local runs can point
DATABASE_URL at sqlite+aiosqlite. Anything dialect-specific (pool tuning,
ON CONFLICT inserts) is selected here so callers stay dialect-agnostic.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ..config.settings import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            # Step writes are tiny; anything slower is a stuck transaction
            "command_timeout": settings.db_statement_timeout_ms / 1000,
            "server_settings": {"statement_timeout": str(settings.db_statement_timeout_ms)},
        },
    }


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def close_db():
    """Dispose of the engine's connection pool."""
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session for one unit of work.

    Commits on clean exit; rolls back and re-raises on any error, so a failed
    step leaves nothing half-written behind for its retry.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database session error, rolling back: {e}")
            await session.rollback()
            raise


def dialect_insert(session: AsyncSession, table):
    """INSERT construct for the session's dialect (supports ON CONFLICT)."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)
