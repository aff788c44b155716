"""
Pytest configuration and fixtures.

Provides:
- In-memory SQLite database (aiosqlite) per test
- L1-only cache layer (no Redis needed)
- HTTP client against the app with DB/settings/throttle overrides
- Task factory
"""

from datetime import date, datetime, timezone

import pytest
from cachetools import TTLCache
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from tarevity.cache.layer import cache_layer
from tarevity.core.config import Settings, get_settings
from tarevity.database import get_db
from tarevity.main import app
from tarevity.models import Task
from tarevity.routers.notifications import get_refresh_throttle
from tarevity.scheduling.throttle import RefreshThrottle


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


# ============================================================================
# Settings / cache
# ============================================================================


@pytest.fixture
def settings():
    return Settings(_env_file=None, cron_secret=None, timezone="UTC")


@pytest.fixture(autouse=True)
def local_cache(settings):
    """Run the cache layer in its degraded, L1-only mode."""
    cache_layer._settings = settings
    cache_layer.l1 = TTLCache(maxsize=1024, ttl=60)
    cache_layer._redis = None
    cache_layer._initialized = True
    cache_layer.stats = dict.fromkeys(cache_layer.stats, 0)
    yield cache_layer
    cache_layer.l1.clear()


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_task(db_session):
    """Factory for Task rows."""

    async def _create(
        title="Pay rent",
        due_date=None,
        user_id="user-1",
        completed=False,
        priority="medium",
    ):
        task = Task(
            title=title,
            due_date=due_date,
            user_id=user_id,
            completed=completed,
            priority=priority,
        )
        db_session.add(task)
        await db_session.commit()
        await db_session.refresh(task)
        return task

    return _create


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
async def client(session_factory, settings):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    throttle = RefreshThrottle(settings.refresh_throttle_seconds)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_refresh_throttle] = lambda: throttle

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-1"}
