"""
Pytest configuration: project root on sys.path, test env, shared fixtures.
"""
import os
import sys
from pathlib import Path

# Add project root to path BEFORE any app imports
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# settings are read at import time
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SERVICE_API_KEY", "test-service-key")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool, StaticPool

from app.database import Base, get_db
from app.main import app
from app.models import Profile
from app.redis_client import get_redis
from app.schemas.drop import DropCreate
from app.security import get_current_user_id
from app.services.drops import create_drop


class FakeRedis:
    """
    Fake Redis client for testing to avoid event loop issues.
    Implements the Redis interface used by the app without actual connections.
    """
    def __init__(self):
        self.hash_store = {}
        self.published = []

    async def hgetall(self, key):
        return self.hash_store.get(key, {})

    async def hset(self, key, mapping):
        self.hash_store.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    async def expire(self, key, seconds):
        return True

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def ping(self):
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def _patch_emitter_redis(monkeypatch, fake_redis):
    """Events emitted without an explicit client land in fake_redis."""

    async def _get_redis():
        return fake_redis

    monkeypatch.setattr("app.events.emitter.get_redis", _get_redis)


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """
    Create a test database session for each test.
    In-memory SQLite by default; set TEST_DATABASE_URL to run against Postgres.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        test_engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with TestSessionLocal() as session:
        yield session

    # Cleanup
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await test_engine.dispose()


@pytest_asyncio.fixture
async def make_profile(db_session):
    """Factory for onboarded profiles."""

    async def _make(**overrides) -> Profile:
        suffix = uuid.uuid4().hex[:8]
        values = {
            "id": uuid.uuid4(),
            "username": f"curator_{suffix}",
            "trust_score": 0,
            "reputation_available": 100,
            "total_drops": 0,
        }
        values.update(overrides)
        profile = Profile(**values)
        db_session.add(profile)
        await db_session.commit()
        await db_session.refresh(profile)
        return profile

    return _make


def drop_data(**overrides) -> DropCreate:
    values = {
        "track_id": "4uLU6hMCjMI75M1A2tKUQC",
        "platform": "spotify",
        "track_name": "Windowlicker",
        "artist_name": "Aphex Twin",
        "album_name": "Windowlicker",
        "context": "A detuned, off-kilter groove that rewards repeated listening on good headphones.",
        "genres": ["idm", "electronic"],
        "reputation_stake": 40,
    }
    values.update(overrides)
    return DropCreate(**values)


@pytest_asyncio.fixture
async def make_drop(db_session):
    """
    Factory for drops created through the staking service.

    created_ago backdates the drop so it is already past expires_at.
    """

    async def _make(owner: Profile, created_ago: timedelta | None = None, **overrides):
        now = datetime.now(timezone.utc)
        if created_ago is not None:
            now = now - created_ago
        drop, _ = await create_drop(db_session, owner.id, drop_data(**overrides), now=now)
        return drop

    return _make


@pytest_asyncio.fixture
async def async_client(db_session, fake_redis):
    """Create an async HTTP client for testing with fake Redis."""
    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(async_client, make_profile):
    """
    Client acting as a freshly onboarded profile.
    Bypasses JWT validation by overriding the caller id dependency.
    """
    profile = await make_profile()

    async def fake_current_user_id():
        return profile.id

    app.dependency_overrides[get_current_user_id] = fake_current_user_id
    yield async_client, profile


@pytest.fixture
def drop_payload():
    """Valid POST /drops body; keyword overrides replace fields."""

    def _payload(**overrides) -> dict:
        return drop_data(**overrides).model_dump()

    return _payload
