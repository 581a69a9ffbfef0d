"""Shared fixtures.

Each test gets its own SQLite database file under tmp_path, so tests are
isolated without a database server. Set TEST_DATABASE_URL to run the
same suite against another async URL (e.g. a PostgreSQL test database).
"""

import os
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from authcore.core.config import Settings
from authcore.core.database import create_engine, create_session_factory
from authcore.models import Base, User
from authcore.services.account_service import AccountService
from authcore.services.user_notifier import DeliveryReceipt, UserNotifier

TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_EMAIL = "test@example.com"
# Security: test-only credential, never used outside the suite
TEST_PASSWORD = "correct horse battery"  # nosec B105  # gitleaks:allow

# Fixed start time for FrozenClock
T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _database_url(tmp_path: Path) -> str:
    override = os.environ.get("TEST_DATABASE_URL")
    if override:
        return override
    return f"sqlite+aiosqlite:///{tmp_path / 'authcore_test.db'}"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier(UserNotifier):
    """Notifier that keeps messages in memory instead of sending them."""

    def __init__(self, config: Settings) -> None:
        super().__init__(config)
        self.sent: list[tuple[str, str, str]] = []

    async def deliver(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        self.sent.append((recipient, subject, body))
        return DeliveryReceipt(
            recipient=recipient,
            subject=subject,
            message_id=f"test-{len(self.sent)}",
        )


class LinkCapture:
    """``token -> url`` function that remembers every token it was given."""

    def __init__(self) -> None:
        self.tokens: list[str] = []

    def __call__(self, token: str) -> str:
        self.tokens.append(token)
        return f"https://app.example.com/links/{token}"

    @property
    def last(self) -> str:
        return self.tokens[-1]


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with cheap Argon2 parameters and a per-test database."""
    return Settings(
        database_url_override=_database_url(tmp_path),
        argon2_time_cost=1,
        argon2_memory_cost=8,
        argon2_parallelism=1,
        environment="test",
        resend_api_key=SecretStr("re_test_key"),
    )


@pytest_asyncio.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with all tables created; dropped again afterwards."""
    engine = create_engine(test_settings.database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for repository-level tests; rolled back at the end."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A confirmed user without a password, committed through db_session."""
    user = User(id=TEST_USER_ID, email=TEST_EMAIL, confirmed_at=T0)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier(test_settings: Settings) -> RecordingNotifier:
    return RecordingNotifier(test_settings)


@pytest.fixture
def links() -> LinkCapture:
    return LinkCapture()


@pytest.fixture
def accounts(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    notifier: RecordingNotifier,
    clock: FrozenClock,
) -> AccountService:
    """AccountService wired to the per-test database and fakes."""
    return AccountService(
        session_factory,
        test_settings,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def register(accounts: AccountService) -> Callable[..., Awaitable[User]]:
    """Register a user with TEST_PASSWORD."""

    async def _register(email: str = TEST_EMAIL, password: str = TEST_PASSWORD) -> User:
        return await accounts.register(email, password, password)

    return _register
