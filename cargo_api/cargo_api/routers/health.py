"""Liveness and readiness checks.

``/api/v1/health`` always answers 200 and reports the store as ``ok`` or
``degraded``.  ``/ready`` is mounted at the root and answers 503 while the
store is unreachable, so an orchestrator stops routing invoice traffic to
an instance that cannot allocate numbers.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api import __version__
from cargo_api.dependencies import SessionDep
from cargo_api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])
readiness_router = APIRouter(tags=["infrastructure"])


async def _store_reachable(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Ledger store check failed: %s", exc)
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    db = "ok" if await _store_reachable(session) else "degraded"
    return HealthResponse(status="healthy", version=__version__, db=db)


@readiness_router.get("/ready")
async def ready(session: SessionDep) -> JSONResponse:
    if await _store_reachable(session):
        return JSONResponse({"status": "ready", "version": __version__, "checks": {"db": "ok"}})
    return JSONResponse(
        {"status": "not_ready", "version": __version__, "checks": {"db": "unavailable"}},
        status_code=503,
    )
