"""In-process notifications for committed ledger writes.

Services call :meth:`EventBus.emit` after their transaction commits.  A
handler that raises is logged and skipped; the invoice, contract or
directory write it reports on has already succeeded and is not undone.

Handlers subscribe to one :class:`EventType` or, with no type, to all of
them.  The process-wide bus is built by :func:`init_event_bus` during
startup with the audit-log and metrics handlers attached.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cargo_api.middleware.prometheus import EVENTS_TOTAL

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    INVOICE_CREATED = "invoice.created"
    INVOICE_UPDATED = "invoice.updated"
    INVOICE_DELETED = "invoice.deleted"
    INVOICES_RESEQUENCED = "invoices.resequenced"
    CONTRACT_CREATED = "contract.created"
    CONTRACT_UPDATED = "contract.updated"
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"
    VEHICLE_CREATED = "vehicle.created"
    VEHICLE_UPDATED = "vehicle.updated"
    VEHICLE_DELETED = "vehicle.deleted"
    TRANSPORTER_CREATED = "transporter.created"
    TRANSPORTER_UPDATED = "transporter.updated"
    TRANSPORTER_DELETED = "transporter.deleted"


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


class EventPayload(BaseModel):
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    correlation_id: str = Field(default_factory=_new_correlation_id)
    data: dict[str, Any] = Field(default_factory=dict)


EventHandler = Callable[[EventPayload], Awaitable[None]]


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """Dispatch each event to its typed subscribers and the catch-all ones, concurrently."""

    def __init__(self) -> None:
        self._typed: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self._catch_all: list[EventHandler] = []

    def register_handler(self, handler: EventHandler, *, event_type: EventType | None = None) -> None:
        """Subscribe *handler* to *event_type*, or to every event when it is ``None``."""
        if event_type is None:
            self._catch_all.append(handler)
        else:
            self._typed[event_type].append(handler)

    @property
    def handler_count(self) -> int:
        return len(self._catch_all) + sum(map(len, self._typed.values()))

    async def _deliver(self, handler: EventHandler, payload: EventPayload) -> None:
        try:
            await handler(payload)
        except Exception:
            logger.exception("Event handler %s raised on %s", _handler_name(handler), payload.event_type.value)

    async def emit(
        self,
        event_type: EventType,
        *,
        data: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> None:
        """Build the payload and await every subscriber; handler errors never reach the caller."""
        subscribers = [*self._typed.get(event_type, ()), *self._catch_all]
        if not subscribers:
            return
        payload = EventPayload(
            event_type=event_type,
            data=data or {},
            correlation_id=correlation_id or _new_correlation_id(),
        )
        await asyncio.gather(*(self._deliver(handler, payload) for handler in subscribers))


# ---------------------------------------------------------------------------
# Built-in subscribers
# ---------------------------------------------------------------------------


async def audit_log_handler(payload: EventPayload) -> None:
    """Log the event; the JSON formatter renders the full payload under ``event``."""
    logger.info(
        "AUDIT: %s corr=%s",
        payload.event_type.value,
        payload.correlation_id,
        extra={"event": payload.model_dump(mode="json")},
    )


async def metrics_handler(payload: EventPayload) -> None:
    EVENTS_TOTAL.labels(event_type=payload.event_type.value).inc()


_event_bus: EventBus | None = None


def init_event_bus() -> EventBus:
    global _event_bus  # noqa: PLW0603
    bus = EventBus()
    for handler in (audit_log_handler, metrics_handler):
        bus.register_handler(handler)
    _event_bus = bus
    return bus


def get_event_bus() -> EventBus:
    """The process-wide bus, created on first use when startup has not built it."""
    return _event_bus if _event_bus is not None else init_event_bus()
