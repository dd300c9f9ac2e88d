"""Shared test fixtures."""

from __future__ import annotations

import os
import time
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("MH_JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("MH_ENVIRONMENT", "test")
os.environ.setdefault("MH_AUTH_RATE_LIMIT_ATTEMPTS", "1000")
os.environ.setdefault("MH_LOG_FORMAT", "console")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from mohallahub import redis_client
from mohallahub.auth.jwt import issue_session
from mohallahub.config import get_settings
from mohallahub.database import close_db, get_engine, get_session, init_db
from mohallahub.db.base import Base
from mohallahub.db.models import DEFAULT_NOTIFICATIONS, Neighborhood, User
from mohallahub.main import create_app
from mohallahub.sms.service import reset_sms_service

get_settings.cache_clear()


# ---------------------------------------------------------------------------
# In-memory Redis
# ---------------------------------------------------------------------------


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple[Any, ...]]] = []

    def incr(self, key: str) -> FakePipeline:
        self._ops.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int, nx: bool = False) -> FakePipeline:
        self._ops.append(("expire", (key, seconds, nx)))
        return self

    async def execute(self) -> list[Any]:
        results = [await getattr(self._redis, name)(*args) for name, args in self._ops]
        self._ops.clear()
        return results


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the app, held in a dict."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.expiry: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expiry.pop(key, None)

    async def get(self, key: str) -> Any:
        self._purge(key)
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self.store[key] = value
        if ex is not None:
            self.expiry[key] = time.monotonic() + ex
        return True

    async def incr(self, key: str) -> int:
        self._purge(key)
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = value
        return value

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if key not in self.store:
            return False
        if nx and key in self.expiry:
            return False
        self.expiry[key] = time.monotonic() + seconds
        return True

    async def ttl(self, key: str) -> int:
        self._purge(key)
        if key not in self.store:
            return -2
        deadline = self.expiry.get(key)
        if deadline is None:
            return -1
        return max(0, int(deadline - time.monotonic()))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def aclose(self) -> None:
        self.store.clear()


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[str, None]:
    """Fresh SQLite database with the schema created from ORM metadata."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'mohallahub.db'}"
    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield url
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: str) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    sessions = get_session()
    session = await anext(sessions)
    yield session
    await sessions.aclose()


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """Install an in-memory Redis as the application's pool."""
    fake = FakeRedis()
    monkeypatch.setattr(redis_client, "_pool", fake)
    return fake


@pytest.fixture
def mock_sms_service(monkeypatch):
    """Mock the SMS service to capture codes instead of sending them."""
    reset_sms_service()
    mock_service = MagicMock()
    mock_service.send_otp = AsyncMock(return_value=True)

    monkeypatch.setattr("mohallahub.auth.router.get_sms_service", lambda *a, **kw: mock_service)
    return mock_service


@pytest_asyncio.fixture
async def client(database: str, fake_redis: FakeRedis, mock_sms_service) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client backed by SQLite and the in-memory Redis."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def last_sent_code(mock_sms_service) -> str:
    """The code passed to the most recent send_otp call."""
    return mock_sms_service.send_otp.call_args.args[1]


async def create_user(
    db: AsyncSession,
    phone: str = "9876543210",
    *,
    name: str | None = "Test User",
    phone_verified: bool = True,
    status: str = "active",
    role: str = "user",
    neighborhood: Neighborhood | None = None,
) -> User:
    """Insert a user directly and commit."""
    now = datetime.now(timezone.utc)
    user = User(
        phone=phone,
        name=name,
        language="en",
        notifications=dict(DEFAULT_NOTIFICATIONS),
        is_phone_verified=phone_verified,
        is_address_verified=neighborhood is not None,
        verification_level="basic",
        otp_attempts=0,
        role=role,
        status=status,
        trust_score=0,
        neighborhood_id=neighborhood.id if neighborhood is not None else None,
        joined_at=now,
        last_active_at=now,
        created_at=now,
        updated_at=now,
    )
    if phone_verified and neighborhood is not None:
        user.verification_level = "verified"
    elif phone_verified:
        user.verification_level = "phone"
    db.add(user)
    await db.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_session(user)}"}


ADDRESS = {
    "pincode": "560034",
    "full_address": "12, 5th Cross, Koramangala 5th Block",
    "city": "Bengaluru",
    "state": "Karnataka",
    "coordinates": {"latitude": 12.9352, "longitude": 77.6245},
}
