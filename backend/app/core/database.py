"""Async SQLAlchemy engine and session handling.

Production runs on PostgreSQL (asyncpg) with schema managed by Alembic.
A ``sqlite+aiosqlite`` URL is accepted for local development; in that case
``create_tables`` builds the schema from the models at startup.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.core.config import Settings, settings
from app.core.logging import get_logger

logger = get_logger("database")


def build_engine(config: Settings) -> AsyncEngine:
    """Create the engine for ``config.database_url``.

    Pool sizing (DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT,
    DB_POOL_RECYCLE) only applies to server databases; SQLite rejects it.
    """
    kwargs: dict[str, Any] = {"echo": config.debug and config.log_level == "DEBUG"}
    if config.is_sqlite:
        # One connection per checkout; file databases need no pool
        kwargs["poolclass"] = NullPool
    else:
        kwargs.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_recycle=config.db_pool_recycle,
            pool_pre_ping=True,
        )
    return create_async_engine(config.database_url, **kwargs)


engine = build_engine(settings)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Commits on success, rolls back on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            # Includes asyncio.CancelledError from dropped connections
            await session.rollback()
            raise


async def create_tables(target: AsyncEngine | None = None) -> None:
    """Create any missing tables from the model metadata (SQLite dev only)."""
    from app.models import Base

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured from model metadata")


async def check_db_connection(session_maker: async_sessionmaker[AsyncSession] | None = None) -> bool:
    """Return True if a trivial query succeeds."""
    maker = session_maker or async_session_maker
    try:
        async with maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        logger.debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        logger.warning(f"Unexpected error checking database connection: {e}")
        return False
