"""Tests for the in-process event bus.

Validates handler routing, correlation ids, failure isolation, and the
built-in audit and metrics handlers.
"""

from __future__ import annotations

import logging

import pytest
from prometheus_client import REGISTRY

import cargo_api.services.event_bus as event_bus_module
from cargo_api.services.event_bus import (
    EventBus,
    EventPayload,
    EventType,
    audit_log_handler,
    get_event_bus,
    init_event_bus,
    metrics_handler,
)


@pytest.fixture
def bus() -> EventBus:
    """A bus with no handlers registered."""
    return EventBus()


def _recorder(sink: list[EventPayload]):
    async def record(payload: EventPayload) -> None:
        sink.append(payload)

    return record


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    def test_handler_count(self, bus: EventBus) -> None:
        assert bus.handler_count == 0
        bus.register_handler(_recorder([]), event_type=EventType.INVOICE_CREATED)
        bus.register_handler(_recorder([]))
        assert bus.handler_count == 2

    @pytest.mark.asyncio
    async def test_typed_handler_only_sees_its_type(self, bus: EventBus) -> None:
        received: list[EventPayload] = []
        bus.register_handler(_recorder(received), event_type=EventType.INVOICE_DELETED)

        await bus.emit(EventType.INVOICE_CREATED, data={"id": "a"})
        await bus.emit(EventType.INVOICE_DELETED, data={"id": "b", "resequenced": 3})

        assert [p.data["id"] for p in received] == ["b"]
        assert received[0].data["resequenced"] == 3

    @pytest.mark.asyncio
    async def test_wildcard_sees_everything(self, bus: EventBus) -> None:
        typed: list[EventPayload] = []
        wildcard: list[EventPayload] = []
        bus.register_handler(_recorder(typed), event_type=EventType.CONTRACT_UPDATED)
        bus.register_handler(_recorder(wildcard))

        await bus.emit(EventType.CONTRACT_UPDATED)
        await bus.emit(EventType.VEHICLE_CREATED)

        assert len(typed) == 1
        assert [p.event_type for p in wildcard] == [EventType.CONTRACT_UPDATED, EventType.VEHICLE_CREATED]

    @pytest.mark.asyncio
    async def test_no_handlers_is_a_no_op(self, bus: EventBus) -> None:
        await bus.emit(EventType.INVOICES_RESEQUENCED, data={"partitions": {}})


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_generated_when_absent(self, bus: EventBus) -> None:
        received: list[EventPayload] = []
        bus.register_handler(_recorder(received))
        await bus.emit(EventType.CUSTOMER_CREATED)
        assert len(received[0].correlation_id) == 32

    @pytest.mark.asyncio
    async def test_passed_through(self, bus: EventBus) -> None:
        received: list[EventPayload] = []
        bus.register_handler(_recorder(received))
        await bus.emit(EventType.CUSTOMER_CREATED, correlation_id="req-7")
        assert received[0].correlation_id == "req-7"


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failing_handler_does_not_reach_caller(self, bus: EventBus, caplog) -> None:
        async def broken_handler(payload: EventPayload) -> None:
            raise RuntimeError("downstream unavailable")

        received: list[EventPayload] = []
        bus.register_handler(broken_handler)
        bus.register_handler(_recorder(received))

        with caplog.at_level(logging.ERROR):
            await bus.emit(EventType.INVOICE_UPDATED, data={"id": "x"})

        assert len(received) == 1
        assert any("broken_handler" in r.message for r in caplog.records)


# ---------------------------------------------------------------------------
# Payload and built-in handlers
# ---------------------------------------------------------------------------


class TestPayload:
    def test_defaults(self) -> None:
        payload = EventPayload(event_type=EventType.TRANSPORTER_DELETED)
        assert payload.data == {}
        assert payload.correlation_id
        assert payload.timestamp.tzinfo is not None

    def test_json_uses_dotted_type(self) -> None:
        payload = EventPayload(event_type=EventType.INVOICES_RESEQUENCED, data={"partitions": {"b2c": 3}})
        assert '"invoices.resequenced"' in payload.model_dump_json()


class TestBuiltInHandlers:
    @pytest.mark.asyncio
    async def test_audit_line(self, caplog) -> None:
        payload = EventPayload(event_type=EventType.INVOICE_CREATED, data={"id": "a", "invoiceNumber": "INV-1"})
        with caplog.at_level(logging.INFO):
            await audit_log_handler(payload)

        [record] = [r for r in caplog.records if "AUDIT" in r.message]
        assert "invoice.created" in record.message
        assert record.event["data"]["invoiceNumber"] == "INV-1"

    @pytest.mark.asyncio
    async def test_metrics_counter(self) -> None:
        labels = {"event_type": "vehicle.deleted"}
        before = REGISTRY.get_sample_value("cargo_events_total", labels) or 0.0
        await metrics_handler(EventPayload(event_type=EventType.VEHICLE_DELETED))
        assert REGISTRY.get_sample_value("cargo_events_total", labels) == before + 1


class TestModuleSingleton:
    def test_init_registers_builtins(self) -> None:
        bus = init_event_bus()
        assert bus.handler_count == 2
        assert get_event_bus() is bus

    def test_get_initialises_lazily(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(event_bus_module, "_event_bus", None)
        assert isinstance(get_event_bus(), EventBus)


class TestEventType:
    def test_values(self) -> None:
        assert {e.value for e in EventType} == {
            "invoice.created",
            "invoice.updated",
            "invoice.deleted",
            "invoices.resequenced",
            "contract.created",
            "contract.updated",
            "customer.created",
            "customer.updated",
            "customer.deleted",
            "vehicle.created",
            "vehicle.updated",
            "vehicle.deleted",
            "transporter.created",
            "transporter.updated",
            "transporter.deleted",
        }

    def test_string_enum(self) -> None:
        assert EventType.INVOICE_DELETED == "invoice.deleted"
