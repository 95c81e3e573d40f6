"""Shared test fixtures."""

from __future__ import annotations

import os

# Settings are cached on first use, so the test environment goes in first.
os.environ["SWACHH_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SWACHH_JWT_SECRET"] = "test-secret-key-for-the-suite-only"
os.environ["SWACHH_LOG_FORMAT"] = "console"
os.environ["SWACHH_ENVIRONMENT"] = "test"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from swachh.auth.jwt import create_access_token  # noqa: E402
from swachh.config import get_settings  # noqa: E402
from swachh.counters import CounterStore, get_counter_store  # noqa: E402
from swachh.database import close_db, get_engine, get_session, init_db  # noqa: E402
from swachh.db.base import Base  # noqa: E402
from swachh.db.models import Issue, User  # noqa: E402
from swachh.exceptions import RateLimitUnavailable  # noqa: E402
from swachh.main import create_app  # noqa: E402
from swachh.users.store import UserStore  # noqa: E402

get_settings.cache_clear()


class InMemoryCounterStore(CounterStore):
    """Counter store with Redis semantics and a hand-driven clock.

    ``now`` only moves when a test calls :meth:`advance`. Setting ``down``
    makes every primitive fail the way an unreachable Redis does.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.down = False
        self.values: dict[str, int] = {}
        self.expires_at: dict[str, float] = {}

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def ttl(self, key: str) -> float | None:
        self._purge(key)
        if key not in self.expires_at:
            return None
        return self.expires_at[key] - self.now

    def _check(self) -> None:
        if self.down:
            raise RateLimitUnavailable

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= self.now:
            self.values.pop(key, None)
            self.expires_at.pop(key, None)

    async def incr(self, key: str) -> int:
        self._check()
        self._purge(key)
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def decr(self, key: str) -> int:
        self._check()
        self._purge(key)
        self.values[key] = self.values.get(key, 0) - 1
        return self.values[key]

    async def decr_if_positive(self, key: str) -> int:
        self._check()
        self._purge(key)
        if key not in self.values:
            return 0
        if self.values[key] > 0:
            self.values[key] -= 1
        elif self.values[key] < 0:
            self.values[key] = 0
        return self.values[key]

    async def incr_if_below(self, key: str, limit: int, seconds: int) -> bool:
        self._check()
        self._purge(key)
        count = self.values.get(key, 0) + 1
        self.values[key] = count
        if key not in self.expires_at:
            self.expires_at[key] = self.now + seconds
        if count > limit:
            self.values[key] = count - 1
            return False
        return True

    async def expire(self, key: str, seconds: int) -> None:
        self._check()
        self._purge(key)
        if key in self.values:
            self.expires_at[key] = self.now + seconds

    async def get(self, key: str) -> int | None:
        self._check()
        self._purge(key)
        return self.values.get(key)

    async def set(self, key: str, value: int) -> None:
        self._check()
        self.values[key] = value
        # Plain SET drops any TTL.
        self.expires_at.pop(key, None)

    async def ping(self) -> bool:
        self._check()
        return True


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test."""
    await init_db(get_settings().database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async for session in get_session():
        yield session
        break


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest_asyncio.fixture
async def client(database: None, counter_store: InMemoryCounterStore) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app; database and counter store are the test doubles above."""
    app = create_app()
    app.dependency_overrides[get_counter_store] = lambda: counter_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(subject: str, name: str | None = None, email: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject, name=name, email=email)}"}


@pytest.fixture
def alice_headers() -> dict[str, str]:
    return auth_headers("alice", name="Alice", email="alice@example.com")


@pytest.fixture
def bob_headers() -> dict[str, str]:
    return auth_headers("bob", name="Bob")


@pytest.fixture
def carol_headers() -> dict[str, str]:
    return auth_headers("carol", name="Carol")


def issue_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "title": "Pothole on MG Road",
        "description": "Deep pothole near the bus stop, two-wheelers keep skidding.",
        "category": "Road",
        "location": "MG Road, Ward 12",
    }
    payload.update(overrides)
    return payload


async def make_user(db: AsyncSession, subject: str, name: str | None = None) -> User:
    """Provision a user row directly (same path a first authenticated request takes)."""
    return await UserStore(db).get_or_create(subject, name=name or subject.title())


async def make_issue(db: AsyncSession, user: User, **fields: object) -> Issue:
    """Insert an issue row directly, bypassing the quota."""
    values: dict[str, object] = {
        "title": "Overflowing drain",
        "description": "Drain overflows after every rain.",
        "category": "Sanitation",
        "location": "Ward 4",
        "created_by": user.id,
    }
    values.update(fields)
    issue = Issue(**values)
    db.add(issue)
    await db.commit()
    return issue
