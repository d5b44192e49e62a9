"""
Shared fixtures for server tests.

Each test gets a fresh SQLite database file, a recording messaging channel and
a controllable clock.
"""

import os

# Must be set before app modules create the engine
os.environ.setdefault("WT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("WT_LOG_FORMAT", "text")

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.core.auth import AuthenticatedUser, create_access_token
from app.core.config import Settings
from app.core.events import NotificationOutbox
from app.models.user import User
from app.services.notifications import NotificationDispatcher
from app.services.tasks import TaskWorkflow
from app.services.verification import InMemoryChallengeStore

OPS_CHAT = "ops-chat"


class FakeChannel:
    """Records every message; ``fail``/``error`` simulate delivery problems."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False
        self.error: Exception | None = None

    async def send(self, recipient: str, message: str) -> bool:
        if self.error is not None:
            raise self.error
        if self.fail:
            return False
        self.sent.append((recipient, message))
        return True

    def to(self, recipient: str) -> list[str]:
        return [m for r, m in self.sent if r == recipient]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


async def _make_user(session_factory, **fields) -> User:
    async with session_factory() as s:
        user = User(**fields)
        s.add(user)
        await s.commit()
        return user


@pytest.fixture
async def admin_user(session_factory) -> User:
    return await _make_user(
        session_factory, email="admin@example.com", full_name="Ada Admin", role="admin"
    )


@pytest.fixture
async def employee(session_factory) -> User:
    return await _make_user(
        session_factory,
        email="emp@example.com",
        full_name="Eve Employee",
        role="employee",
        telegram_id="1001",
    )


@pytest.fixture
async def unreachable_employee(session_factory) -> User:
    return await _make_user(
        session_factory, email="quiet@example.com", full_name="Quinn Quiet", role="employee"
    )


@pytest.fixture
def admin(admin_user) -> AuthenticatedUser:
    return AuthenticatedUser.from_user(admin_user)


@pytest.fixture
def worker(employee) -> AuthenticatedUser:
    return AuthenticatedUser.from_user(employee)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(timezone="UTC", status_update_max_attempts=3)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def dispatcher(channel) -> NotificationDispatcher:
    return NotificationDispatcher(channel, ops_chat_id=OPS_CHAT)


@pytest.fixture
def outbox(dispatcher) -> NotificationOutbox:
    return NotificationOutbox(dispatcher, max_size=100)


@pytest.fixture
def challenges(clock) -> InMemoryChallengeStore:
    return InMemoryChallengeStore(ttl_minutes=15, clock=clock)


@pytest.fixture
def workflow(session, challenges, outbox, settings, clock) -> TaskWorkflow:
    return TaskWorkflow(session, challenges, outbox, settings=settings, clock=clock)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(session_factory, challenges, outbox):
    from app.api.v1.tasks import get_challenge_store, get_outbox
    from app.core.database import get_session
    from app.main import app

    async def _session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_challenge_store] = lambda: challenges
    app.dependency_overrides[get_outbox] = lambda: outbox

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def bearer():
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers
