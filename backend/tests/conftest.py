"""Pytest configuration and fixtures for backend tests.

Database Handling:
- By default every test gets its own SQLite file database (aiosqlite), so
  concurrent sessions in race tests really hit separate connections
- Set TEST_DATABASE_URL to run against PostgreSQL instead (tables are
  created and dropped around each test)
"""

import itertools
import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables before importing app modules
_APP_DB_DIR = tempfile.mkdtemp(prefix="rugalika-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_APP_DB_DIR}/app.db"
os.environ["JWT_SECRET_KEY"] = "test-access-secret-" + "a" * 32
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-" + "b" * 32
os.environ["EMAIL_BACKEND"] = "console"
# Set high default rate limit for tests; login endpoints keep their own limits
os.environ["RATE_LIMIT_REQUESTS_PER_MINUTE"] = "10000"

ACCESS_SECRET = os.environ["JWT_SECRET_KEY"]
REFRESH_SECRET = os.environ["JWT_REFRESH_SECRET_KEY"]

# Fixed starting point for the controllable clock
BASE_TIME = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# --- Clock ---


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# --- Email ---


class RecordingMailer:
    """EmailDelivery stub that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.succeed = True

    async def send_one_time_code_message(self, email: str, code: str) -> bool:
        self.sent.append((email, code))
        return self.succeed

    def last_code_for(self, email: str) -> str:
        for recipient, code in reversed(self.sent):
            if recipient == email:
                return code
        raise AssertionError(f"No code was sent to {email}")


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


# --- Rate Limiter Reset Fixture ---


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Clear rate limiter buckets so limits never leak between tests.

    The middleware caches the singleton at init time, so the buckets are
    cleared in place instead of replacing the instance.
    """
    from app.middleware.rate_limit import RateLimiter

    rate_limiter = RateLimiter.get_instance()
    rate_limiter._buckets.clear()
    yield
    rate_limiter._buckets.clear()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a fresh database engine with all tables for one test."""
    from app.models import Base

    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path}/test.db"
    engine = create_async_engine(url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need several independent sessions."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# --- Service Fixtures ---


@pytest.fixture
def token_issuer(clock):
    from app.services.tokens import TokenIssuer

    return TokenIssuer(ACCESS_SECRET, REFRESH_SECRET, clock=clock)


@pytest.fixture
def auth_service(db_session, token_issuer, mailer, clock):
    from app.services.auth import AuthSessionService
    from app.services.one_time_code import OneTimeCodeStore
    from app.services.token_blacklist import TokenBlacklistStore
    from app.services.user_directory import SQLUserDirectory

    return AuthSessionService(
        codes=OneTimeCodeStore(db_session, clock=clock),
        tokens=token_issuer,
        blacklist=TokenBlacklistStore(db_session, clock=clock),
        users=SQLUserDirectory(db_session),
        mailer=mailer,
        clock=clock,
    )


# --- Test Factories ---

_counter = itertools.count(1)


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test User objects."""
    from app.models.user import ROLE_CITIZEN, STATUS_ACTIVE, User

    async def _create_user(
        email: str | None = None,
        role: str = ROLE_CITIZEN,
        status: str = STATUS_ACTIVE,
        **kwargs,
    ) -> User:
        n = next(_counter)
        user = User(
            first_name=kwargs.pop("first_name", "Test"),
            last_name=kwargs.pop("last_name", f"User{n}"),
            email=email or f"citizen{n}@rugalika.rw",
            phone=kwargs.pop("phone", f"+250788{n:06d}"),
            national_id=kwargs.pop("national_id", f"{n:016d}"),
            role=role,
            status=status,
            **kwargs,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user


@pytest_asyncio.fixture
async def citizen_user(user_factory):
    return await user_factory(email="citizen@rugalika.rw")


@pytest_asyncio.fixture
async def admin_user(user_factory):
    from app.models.user import ROLE_ADMIN

    return await user_factory(email="admin@rugalika.rw", role=ROLE_ADMIN)


# --- HTTP Client ---


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession, mailer) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database and mailer overrides."""
    from app.api.auth import get_mailer
    from app.core.database import get_db
    from app.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app_issuer():
    """The token issuer the application itself uses (real clock)."""
    from app.main import app

    return app.state.token_issuer


@pytest.fixture
def citizen_headers(citizen_user, app_issuer) -> dict[str, str]:
    return bearer(app_issuer.issue_access_token(citizen_user))


@pytest.fixture
def admin_headers(admin_user, app_issuer) -> dict[str, str]:
    return bearer(app_issuer.issue_access_token(admin_user))
