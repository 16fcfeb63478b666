"""ASGI entry-point: ``uvicorn cargo_api.main:app``."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from cargo_api import __version__
from cargo_api.config import APISettings, load_api_settings
from cargo_api.dependencies import dispose_engine, init_engine
from cargo_api.middleware.json_formatter import JSONFormatter
from cargo_api.middleware.logging import CORRELATION_HEADER, RequestLoggingMiddleware
from cargo_api.middleware.prometheus import PrometheusMiddleware
from cargo_api.routers import customers, health, invoices, metrics, transporters, vehicles
from cargo_api.services.event_bus import init_event_bus

logger = logging.getLogger(__name__)

_API_PREFIX = "/api/v1"


def configure_logging(settings: APISettings) -> None:
    """Point the root logger at stderr, as JSON lines when ``structured_logging`` is set."""
    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = load_api_settings()
    configure_logging(settings)

    engine = init_engine(settings)
    if settings.auto_create_tables:
        from cargo_core.state.tables import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger tables created on %s", engine.dialect.name)

    init_event_bus()
    logger.info("Cargo API %s started (%s)", __version__, settings.platform_env.value)
    try:
        yield
    finally:
        await dispose_engine()
        logger.info("Cargo API stopped")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


async def _bad_value(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Invalid request"})


async def _database_failure(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database failure during %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal database error"})


def create_app() -> FastAPI:
    settings = load_api_settings()
    app = FastAPI(
        title="Cargo Back-Office API",
        description="Invoice numbering and totals, transport contracts, customers and fleet.",
        version=__version__,
        lifespan=lifespan,
    )

    # The last middleware added runs outermost: request logging wraps CORS and metrics.
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", CORRELATION_HEADER],
        expose_headers=[CORRELATION_HEADER],
    )
    app.add_middleware(RequestLoggingMiddleware)

    for module in (health, invoices, customers, vehicles, transporters):
        app.include_router(module.router, prefix=_API_PREFIX)
    app.include_router(metrics.router)
    app.include_router(health.readiness_router)

    app.add_exception_handler(ValueError, _bad_value)
    app.add_exception_handler(SQLAlchemyError, _database_failure)
    return app


app = create_app()
