"""Engine construction for the ledger store.

The URL scheme picks the backend. ``sqlite+aiosqlite`` URLs are handed to
:mod:`cargo_core.state.sqlite_adapter`; anything else is treated as a
PostgreSQL DSN and gets a pooled asyncpg engine with server-side timeouts,
so a stuck counter row cannot hold an invoice request forever.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

# Postgres timeouts in milliseconds.
_STATEMENT_TIMEOUT_MS = 30_000
_LOCK_TIMEOUT_MS = 10_000


def _sqlite_path(database_url: str) -> str:
    database = make_url(database_url).database
    return database or ":memory:"


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Build the async engine for *database_url*.

    Parameters
    ----------
    database_url:
        ``postgresql+asyncpg://...`` or ``sqlite+aiosqlite:///path``.  A SQLite
        URL without a path opens an in-memory database.
    pool_size, max_overflow:
        Connection pool bounds; only used for PostgreSQL.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        from cargo_core.state.sqlite_adapter import get_local_engine

        return get_local_engine(_sqlite_path(database_url))

    server_settings = {
        "statement_timeout": str(_STATEMENT_TIMEOUT_MS),
        "lock_timeout": str(_LOCK_TIMEOUT_MS),
    }
    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        connect_args={"server_settings": server_settings},
    )
    logger.info("PostgreSQL engine ready (pool=%d+%d)", pool_size, max_overflow)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose objects stay readable after commit.

    Services read ids and numbers off rows after committing, before they
    emit events, so attributes must not be expired on commit.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Open one unit of work on *engine*: commit when the block succeeds, roll back when it raises."""
    async with make_session_factory(engine)() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()
