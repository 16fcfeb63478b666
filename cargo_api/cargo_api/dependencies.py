"""Request-scoped dependencies: settings, the ledger session, the event bus."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from functools import lru_cache
from typing import Annotated

from cargo_core.config import BillingSettings, load_billing_settings
from cargo_core.state.database import get_engine, make_session_factory
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cargo_api.config import APISettings, load_api_settings
from cargo_api.services.event_bus import EventBus, get_event_bus

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_settings() -> APISettings:
    return load_api_settings()


@lru_cache(maxsize=1)
def get_billing_settings() -> BillingSettings:
    return load_billing_settings()


SettingsDep = Annotated[APISettings, Depends(get_settings)]
BillingSettingsDep = Annotated[BillingSettings, Depends(get_billing_settings)]

# ---------------------------------------------------------------------------
# Ledger store
# ---------------------------------------------------------------------------


class _Store:
    engine: AsyncEngine | None = None
    sessions: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Open the process-wide engine; called once from the app lifespan."""
    engine = get_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    _Store.engine = engine
    _Store.sessions = make_session_factory(engine)
    return engine


async def dispose_engine() -> None:
    engine, _Store.engine, _Store.sessions = _Store.engine, None, None
    if engine is not None:
        await engine.dispose()


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """One session per request.

    Services commit their own writes; whatever is still pending when the
    handler returns is committed here, and an exception discards it.
    """
    if _Store.sessions is None:
        raise RuntimeError("init_engine() has not run; the app lifespan did not start")
    async with _Store.sessions() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]


def get_correlation_id(request: Request) -> str | None:
    """Correlation id stamped on the request by :class:`RequestLoggingMiddleware`."""
    return getattr(request.state, "correlation_id", None)


CorrelationDep = Annotated[str | None, Depends(get_correlation_id)]
