"""Tests for engine construction and database helpers."""

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import Settings
from app.core.database import build_engine, check_db_connection, create_tables
from tests.conftest import ACCESS_SECRET, REFRESH_SECRET


def _settings(url: str) -> Settings:
    return Settings(
        database_url=url,
        jwt_secret_key=ACCESS_SECRET,
        jwt_refresh_secret_key=REFRESH_SECRET,
    )


class TestBuildEngine:
    async def test_sqlite_engine_uses_null_pool(self, tmp_path):
        engine = build_engine(_settings(f"sqlite+aiosqlite:///{tmp_path}/dev.db"))
        try:
            assert engine.dialect.name == "sqlite"
            assert isinstance(engine.pool, NullPool)
        finally:
            await engine.dispose()


class TestCreateTables:
    async def test_creates_auth_tables(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/dev.db")
        try:
            await create_tables(engine)
            await create_tables(engine)

            async with engine.connect() as conn:
                names = await conn.run_sync(lambda c: inspect(c).get_table_names())
        finally:
            await engine.dispose()

        assert {"users", "one_time_codes", "token_blacklist"} <= set(names)


class TestCheckConnection:
    async def test_reachable(self, session_factory):
        assert await check_db_connection(session_factory) is True

    async def test_unreachable(self, tmp_path):
        # A directory cannot be opened as a database file
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}")
        maker = async_sessionmaker(engine, class_=AsyncSession)
        try:
            assert await check_db_connection(maker) is False
        finally:
            await engine.dispose()
