"""Shared fixtures for cargo API tests.

Every test gets a fresh in-memory SQLite database with the full schema, a
session bound to it, a mock event bus that records emissions, and an
httpx client over the ASGI app with the database and bus dependencies
overridden.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from cargo_core.config import BillingSettings
from cargo_core.state.repository import CustomerRepository, InvoiceRepository, TransporterRepository
from cargo_core.state.sqlite_adapter import create_local_tables, get_local_engine
from cargo_core.state.tables import InvoiceTable
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cargo_api.dependencies import get_billing_settings, get_db_session
from cargo_api.main import create_app
from cargo_api.services.event_bus import EventBus, EventType, get_event_bus

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    eng = get_local_engine(":memory:")
    await create_local_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Settings and events
# ---------------------------------------------------------------------------


@pytest.fixture()
def billing_settings() -> BillingSettings:
    return BillingSettings(default_vat_percentage=5.0, allow_sequence_fallback=True, sequence_width=4)


@pytest.fixture()
def event_bus() -> AsyncMock:
    """Event bus double; inspect ``emit.await_args_list`` for emissions."""
    return AsyncMock(spec=EventBus)


def emitted(bus: AsyncMock, event_type: EventType) -> list[dict[str, Any]]:
    """Return the ``data`` of every emission of *event_type* on *bus*."""
    return [call.kwargs.get("data") or {} for call in bus.emit.await_args_list if call.args[0] is event_type]


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


async def seed_customer(session: AsyncSession, customer_id: str = "cust-1", **fields: Any) -> str:
    defaults = {"name": "Gulf Trading LLC", "trn": "100200300400003", "address": "Dubai"}
    await CustomerRepository(session).create(customer_id=customer_id, **{**defaults, **fields})
    await session.commit()
    return customer_id


async def seed_transporter(session: AsyncSession, transporter_id: str = "tr-1", **fields: Any) -> str:
    defaults = {
        "company_name": "Desert Haulage",
        "contact_person": "Omar",
        "email": f"{transporter_id}@haulage.example",
        "vehicles": [],
    }
    await TransporterRepository(session).create(transporter_id=transporter_id, **{**defaults, **fields})
    await session.commit()
    return transporter_id


async def seed_legacy_invoice(
    session: AsyncSession,
    invoice_id: str,
    document: dict[str, Any],
    *,
    business_mode: str | None = None,
    invoice_number: str | None = None,
    sequence: int | None = None,
    created_at: datetime | None = None,
    **columns: Any,
) -> InvoiceTable:
    """Insert an invoice row directly, bypassing validation and numbering."""
    row = await InvoiceRepository(session).create(
        invoice_id=invoice_id,
        business_mode=business_mode,
        invoice_number=invoice_number,
        sequence=sequence,
        document=document,
        created_at=created_at or datetime.now(UTC),
        **columns,
    )
    await session.commit()
    return row


def b2c_body(customer_id: str = "cust-1", **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "businessMode": "b2c",
        "customerId": customer_id,
        "items": [
            {"workDate": "2026-03-02", "description": "Crane hire", "quantity": 2, "rate": 500},
            {"workDate": "2026-03-03", "description": "Flatbed", "quantity": 1, "rate": 250},
        ],
    }
    body.update(overrides)
    return body


def b2b_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "businessMode": "b2b",
        "customerName": "Emirates Freight",
        "customerTRN": "100999888700003",
        "customerAddress": "Sharjah",
        "date": "2026-03-15",
        "items": [{"description": "Container move", "quantity": 3, "rate": 1000}],
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# FastAPI client (async httpx)
# ---------------------------------------------------------------------------


@pytest.fixture()
def app(
    session_factory: async_sessionmaker[AsyncSession],
    billing_settings: BillingSettings,
    event_bus: AsyncMock,
):
    """FastAPI app bound to the in-memory database and the mock event bus."""
    application = create_app()

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_db_session] = _override_session
    application.dependency_overrides[get_billing_settings] = lambda: billing_settings
    application.dependency_overrides[get_event_bus] = lambda: event_bus
    return application


@pytest_asyncio.fixture()
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
