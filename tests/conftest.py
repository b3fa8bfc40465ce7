"""
Shared test fixtures for AMP Tracker.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode, JWT secret, in-memory database)
- Async database engine and session (in-memory SQLite via aiosqlite)
- A fixed clock and an in-memory Redis stand-in
- A user with a configured timezone and its UserContext
- Stores, recorder, customizer and hydrator wired to the test session

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("AMP_DEV_MODE", "1")
os.environ.setdefault(
    "AMP_API_SECRET_KEY",
    "test-secret-key-for-jwt-signing-at-least-32-bytes-long",
)
os.environ.setdefault("AMP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# ---------------------------------------------------------------------------
# Application imports (after env vars are set)
# ---------------------------------------------------------------------------

import src.models  # noqa: E402, F401  (registers all models with Base.metadata)
from src.config.settings import reset_settings  # noqa: E402
from src.core.clock import FixedClock  # noqa: E402
from src.core.user_context import Role, UserContext  # noqa: E402
from src.infra.database import build_engine  # noqa: E402
from src.models.base import Base  # noqa: E402
from src.models.user import User  # noqa: E402
from src.services.block_overrides import BlockCustomizer, BlockOverrideStore  # noqa: E402
from src.services.completion_recorder import CompletionRecorder  # noqa: E402
from src.services.day_store import DayRecordStore  # noqa: E402
from src.services.hydration import DayHydrator  # noqa: E402
from src.services.template_store import TemplateStore  # noqa: E402

# 2025-09-17 08:15 in New York (EDT, UTC-4)
FIXED_INSTANT = datetime(2025, 9, 17, 12, 15, tzinfo=UTC)
TEST_TIMEZONE = "America/New_York"


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Re-read settings from the environment for every test."""
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# 2. Database -- in-memory SQLite per test
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def engine():
    """
    Provide an async engine backed by a fresh in-memory SQLite database.

    Uses the production engine recipe (foreign keys, SAVEPOINT support).
    """
    test_engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine):
    """Provide an async SQLAlchemy session on the test engine."""
    TestingSession = async_sessionmaker(engine, expire_on_commit=False)
    async with TestingSession() as session:
        yield session


# ---------------------------------------------------------------------------
# 3. Clock and cache
# ---------------------------------------------------------------------------

@pytest.fixture()
def fixed_clock():
    """Clock frozen at 2025-09-17 12:15 UTC (08:15 in New York)."""
    return FixedClock(FIXED_INSTANT)


@pytest.fixture()
def redis_store():
    """Backing dict of the ``mock_redis`` fixture (key -> stored string)."""
    return {}


@pytest.fixture()
def mock_redis(redis_store):
    """Mock RedisService backed by an in-memory dict."""
    svc = MagicMock()

    async def _get(key):
        return redis_store.get(key)

    async def _set(key, value, ttl=None):
        redis_store[key] = json.dumps(value)
        return True

    async def _delete(key):
        return redis_store.pop(key, None) is not None

    async def _incr(key, ttl=None):
        redis_store[key] = str(int(redis_store.get(key, "0")) + 1)
        return int(redis_store[key])

    svc.get = AsyncMock(side_effect=_get)
    svc.set = AsyncMock(side_effect=_set)
    svc.delete = AsyncMock(side_effect=_delete)
    svc.incr = AsyncMock(side_effect=_incr)
    svc.close = AsyncMock()
    return svc


# ---------------------------------------------------------------------------
# 4. Users and contexts
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def user(db_session):
    """A public user living in New York."""
    row = User(email="owner@example.com", role="public", timezone=TEST_TIMEZONE)
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture()
def ctx(user):
    """UserContext of the ``user`` fixture."""
    return UserContext(user_id=user.id, role=Role.PUBLIC, timezone=user.timezone)


# ---------------------------------------------------------------------------
# 5. Services
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def template_store(db_session):
    """TemplateStore with the built-in templates seeded for every role."""
    store = TemplateStore(db_session)
    await store.seed_default_templates()
    return store


@pytest.fixture()
def day_store(db_session):
    return DayRecordStore(db_session)


@pytest.fixture()
def override_store(db_session):
    return BlockOverrideStore(db_session)


@pytest.fixture()
def recorder(day_store, fixed_clock, mock_redis):
    return CompletionRecorder(day_store, clock=fixed_clock, redis_service=mock_redis)


@pytest.fixture()
def customizer(override_store, mock_redis):
    return BlockCustomizer(override_store, redis_service=mock_redis)


@pytest.fixture()
def hydrator(template_store, day_store, override_store):
    return DayHydrator(template_store, day_store, override_store)
