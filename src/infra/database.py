"""
Database engine and session factory for AMP Tracker.

The engine is created lazily from ``AMP_DATABASE_URL`` and shared by the
process. It is an asyncio engine: ``sqlite+aiosqlite://`` for development
and tests, ``postgresql+asyncpg://`` in production. Request handlers obtain
an ``AsyncSession`` through ``session_scope()`` (or the FastAPI dependency
in ``src.api.dependencies``).

Usage:
    from src.infra.database import init_database, session_scope

    await init_database()            # create tables (idempotent)
    async with session_scope() as session:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.config.settings import get_settings
from src.models.base import Base

logger = logging.getLogger(__name__)

# Seconds a SQLite writer waits for another connection's write lock
SQLITE_BUSY_TIMEOUT = 15.0

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _configure_sqlite_connection(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn) -> None:  # type: ignore[no-untyped-def]
    # Take the write lock up front: two deferred transactions that both read
    # and then write would deadlock on lock upgrade instead of queueing
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def _is_memory_url(database_url: str) -> bool:
    return database_url.endswith("://") or database_url.endswith(":memory:")


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine.

    SQLite connections get foreign-key enforcement and an explicit
    ``BEGIN IMMEDIATE`` so that concurrent writers queue on the busy timeout
    and the SAVEPOINT-guarded inserts of the day-record store work.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"timeout": SQLITE_BUSY_TIMEOUT}}
        if _is_memory_url(database_url):
            # One shared connection, otherwise every connection sees an empty database
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(database_url, **kwargs)
        event.listen(engine.sync_engine, "connect", _configure_sqlite_connection)
        event.listen(engine.sync_engine, "begin", _begin_sqlite_transaction)
        return engine
    return create_async_engine(database_url, pool_pre_ping=True)


def get_engine() -> AsyncEngine:
    """Get the process-wide engine singleton."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


def configure_database(engine: AsyncEngine) -> None:
    """Use ``engine`` instead of the one derived from settings (tests, scripts)."""
    global _engine, _session_factory
    _engine = engine
    _session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_database() -> None:
    """Create all tables that do not exist yet."""
    import src.models  # noqa: F401  (registers all models with Base.metadata)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Provide a session that is always closed; callers commit explicitly."""
    async with get_session_factory()() as session:
        yield session


__all__ = [
    "SQLITE_BUSY_TIMEOUT",
    "build_engine",
    "get_engine",
    "get_session_factory",
    "configure_database",
    "init_database",
    "session_scope",
]
