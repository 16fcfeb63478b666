"""Service layer for the invoice lifecycle.

Creates invoices with sequential per-mode numbers, serves them with
legacy totals backfilled and related records attached, applies partial
updates (auto-completing the linked contract once an invoice is fully
settled), and deletes them while keeping each partition's sequences
contiguous.

Every write commits before its event is emitted, so subscribers never
see an invoice that could still roll back.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from cargo_core.billing.errors import NotFoundError, ValidationError
from cargo_core.billing.line_items import build_items, resolve_vat_percentage, validate_items
from cargo_core.billing.numbering import BusinessMode, parse_sequence
from cargo_core.billing.totals import Totals, compute_totals, to_number
from cargo_core.billing.words import to_words
from cargo_core.config import BillingSettings
from cargo_core.state.repository import (
    CustomerRepository,
    InvoiceRepository,
    TransporterRepository,
    VehicleRepository,
)
from cargo_core.state.tables import InvoiceTable
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api.services.contract_service import ContractService
from cargo_api.services.directory_service import customer_to_dict, transporter_to_dict, vehicle_to_dict
from cargo_api.services.event_bus import EventBus, EventType, get_event_bus
from cargo_api.services.numbering_service import (
    InvoiceNumberAllocator,
    ResequenceService,
    parse_logical_date,
)

logger = logging.getLogger(__name__)

INVOICE_STATUSES = frozenset({"pending", "paid", "overdue", "cancelled"})
CARGO_STATUSES = frozenset({"awaiting_pickup", "in_transit", "delivered", "returned"})
TRANSPORTER_PAYMENT_STATUSES = frozenset({"unpaid", "paid"})

# B2B-only status axes, stored lower-cased.
_B2B_STATUS_FIELDS = {"cargoStatus": CARGO_STATUSES, "transporterPaymentStatus": TRANSPORTER_PAYMENT_STATUSES}

# Partial-update fields copied into the document as given.
_SHARED_UPDATE_FIELDS = ("origin", "destination", "notes", "dueDate")
_B2C_UPDATE_FIELDS = ("customerPONumber", "paymentTerms")
_B2B_UPDATE_FIELDS = ("do_no", "job_no", "payment_terms")


def _b2b_statuses(mode: BusinessMode, changes: Mapping[str, Any]) -> dict[str, str]:
    statuses = {}
    for key, allowed in _B2B_STATUS_FIELDS.items():
        value = changes.get(key)
        if value is None:
            continue
        if mode is not BusinessMode.B2B:
            raise ValidationError(f"{key} applies to B2B invoices only")
        normalised = str(value).strip().lower()
        if normalised not in allowed:
            raise ValidationError(f"Invalid {key} '{value}'; expected one of {', '.join(sorted(allowed))}")
        statuses[key] = normalised
    return statuses


def _priced_totals(rows: list[dict[str, Any]], tax_rate: Any) -> Totals:
    totals = compute_totals(rows, tax_rate)
    if not math.isfinite(totals.grand_total):
        raise ValidationError("Invoice amounts are too large")
    return totals


def _vehicle_snapshot(vehicle: dict[str, Any]) -> dict[str, Any]:
    return {key: vehicle.get(key) for key in ("id", "vehicleName", "vehicleNumber", "type", "capacity")}


def _is_settled(mode: BusinessMode, status: Any, document: Mapping[str, Any]) -> bool:
    """Whether an invoice has reached its fully completed state."""

    def _is(value: Any, expected: str) -> bool:
        return isinstance(value, str) and value.lower() == expected

    if not _is(status, "paid"):
        return False
    if mode is BusinessMode.B2C:
        return True
    return _is(document.get("cargoStatus"), "delivered") and _is(document.get("transporterPaymentStatus"), "paid")


def invoice_to_dict(row: InvoiceTable) -> dict[str, Any]:
    """Merge an invoice's columns over its stored document."""
    data = dict(row.document or {})
    data["id"] = row.invoice_id
    if row.business_mode is not None:
        data["businessMode"] = row.business_mode
    if row.invoice_number is not None:
        data["invoiceNumber"] = row.invoice_number
        data["number"] = row.invoice_number
    if row.sequence is not None:
        data["sequence"] = row.sequence
    data["status"] = row.status
    for key, value in (
        ("customerId", row.customer_id),
        ("vehicleId", row.vehicle_id),
        ("transporterId", row.transporter_id),
        ("contractId", row.contract_id),
    ):
        if value:
            data[key] = value
    data["createdAt"] = row.created_at.isoformat() if row.created_at else None
    data["updatedAt"] = row.updated_at.isoformat() if row.updated_at else None
    return data


def backfill_totals(data: dict[str, Any]) -> dict[str, Any]:
    """Fill in totals on a legacy invoice dict that lacks them.

    Applies when ``billTotal`` is zero or absent, or ``vat_5_percent`` or
    ``grand_total`` is missing.  Words are filled only where absent.
    Modifies and returns *data*; storage is not touched.
    """
    if to_number(data.get("billTotal")) and "vat_5_percent" in data and "grand_total" in data:
        return data
    items = data.get("items")
    if not isinstance(items, list):
        return data
    totals = compute_totals(items, data.get("taxRate", 0))
    data.update(totals.as_document())
    if not data.get("totalInWords") or not data.get("amount_in_words"):
        words = to_words(totals.grand_total)
        data["totalInWords"] = data.get("totalInWords") or words
        data["amount_in_words"] = data.get("amount_in_words") or words
    return data


def invoice_revenue(data: Mapping[str, Any]) -> float:
    """Stored bill total, recomputed from the items when zero or absent."""
    revenue = to_number(data.get("billTotal"))
    if not revenue and isinstance(data.get("items"), list):
        revenue = compute_totals(data["items"], data.get("taxRate", 0)).bill_total
    return revenue


# ---------------------------------------------------------------------------
# Related-record hydration
# ---------------------------------------------------------------------------


class _Hydrator:
    """Attach customer, vehicle and transporter records to invoice dicts.

    Lookups are cached per instance.  A missing record, or one whose lookup
    fails, is logged and left off the invoice.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._customers = CustomerRepository(session)
        self._vehicles = VehicleRepository(session)
        self._transporters = TransporterRepository(session)
        self._cache: dict[tuple[str, str], dict[str, Any] | None] = {}

    async def _lookup(self, kind: str, record_id: str) -> dict[str, Any] | None:
        key = (kind, record_id)
        if key in self._cache:
            return self._cache[key]
        record: dict[str, Any] | None = None
        try:
            # A failed lookup rolls back to its own savepoint only.
            async with self._session.begin_nested():
                record = await self._fetch(kind, record_id)
        except SQLAlchemyError:
            logger.exception("Failed to load %s %s", kind, record_id)
        if record is None:
            logger.info("Related %s %s not found; omitting", kind, record_id)
        self._cache[key] = record
        return record

    async def _fetch(self, kind: str, record_id: str) -> dict[str, Any] | None:
        if kind == "customer":
            row = await self._customers.get(record_id)
            return customer_to_dict(row) if row is not None else None
        if kind == "vehicle":
            row = await self._vehicles.get(record_id)
            return vehicle_to_dict(row) if row is not None else None
        row = await self._transporters.get(record_id)
        if row is None:
            return None
        record = transporter_to_dict(row)
        record["vehicles"] = await self._resolve_vehicles(record["vehicles"])
        return record

    async def _resolve_vehicles(self, vehicles: list[Any]) -> list[Any]:
        resolved = []
        for vehicle in vehicles:
            if isinstance(vehicle, str):
                vehicle = await self._lookup("vehicle", vehicle)
            if vehicle:
                resolved.append(vehicle)
        return resolved

    async def hydrate(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("vehicleId"):
            vehicle = await self._lookup("vehicle", data["vehicleId"])
            if vehicle is not None:
                data["vehicle"] = vehicle
        elif data.get("vehicleInfo"):
            data["vehicle"] = data["vehicleInfo"]

        if data.get("transporterId"):
            transporter = await self._lookup("transporter", data["transporterId"])
            if transporter is not None:
                data["transporter"] = transporter

        if data.get("customerId"):
            customer = await self._lookup("customer", data["customerId"])
            if customer is not None:
                data["customer"] = customer

        if isinstance(data.get("items"), list):
            items = []
            for item in data["items"]:
                if isinstance(item, Mapping) and item.get("vehicleId"):
                    vehicle = await self._lookup("vehicle", item["vehicleId"])
                    if vehicle is not None:
                        item = {**item, "vehicle": vehicle}
                items.append(item)
            data["items"] = items
        return data


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class InvoiceService:
    """Business logic for the invoice lifecycle.

    Parameters
    ----------
    session:
        Active database session.  Write operations commit it.
    settings:
        Billing settings (VAT default, numbering).
    event_bus:
        Sink for ``invoice.*`` and ``contract.updated`` events; defaults to
        the global bus.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: BillingSettings,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._events = event_bus or get_event_bus()
        self._invoices = InvoiceRepository(session)
        self._customers = CustomerRepository(session)
        self._vehicles = VehicleRepository(session)
        self._allocator = InvoiceNumberAllocator(session, settings)
        self._resequencer = ResequenceService(session, settings)
        self._contracts = ContractService(session, event_bus=self._events)

    # -- Create --------------------------------------------------------------

    async def create_invoice(
        self,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Validate, number and store a new invoice.

        Raises
        ------
        ValidationError
            If the mode, customer details or items are invalid.
        NotFoundError
            If the referenced B2C customer does not exist.
        """
        raw_mode = body.get("businessMode") or BusinessMode.B2C.value
        mode = BusinessMode.parse(raw_mode)
        if mode is None:
            raise ValidationError(f"Invalid business mode '{raw_mode}'")

        items = body.get("items")
        if not items:
            raise ValidationError("Items are required")
        if mode is BusinessMode.B2C and not body.get("customerId"):
            raise ValidationError("Customer is required for B2C invoices")
        if mode is BusinessMode.B2B and not (
            body.get("customerName") or body.get("customerTRN") or body.get("customerAddress")
        ):
            raise ValidationError("Customer details are required for B2B invoices")
        validate_items(mode, items)

        invoice_date = datetime.now(UTC)
        if mode is BusinessMode.B2B and body.get("date"):
            invoice_date = parse_logical_date(body["date"])
            if invoice_date is None:
                raise ValidationError("Invalid invoice date")

        document: dict[str, Any] = {"invoiceType": mode.value.upper()}
        customer_id: str | None = None
        if mode is BusinessMode.B2C:
            customer_id = body["customerId"]
            customer_row = await self._customers.get(customer_id)
            if customer_row is None:
                raise NotFoundError("Customer", customer_id)
            customer = customer_to_dict(customer_row)
            vat_percentage = resolve_vat_percentage(body.get("vatPercentage"), self._settings.default_vat_percentage)
            document.update(
                customer={k: customer[k] for k in ("id", "name", "email", "phone", "address", "trn")},
                customerPONumber=body.get("customerPONumber") or "",
                paymentTerms=body.get("paymentTerms") or "cash",
                vatPercentage=vat_percentage,
                customerTRN=customer["trn"] or "",
                customerName=customer["name"] or "",
                customerAddress=customer["address"] or "",
            )
        else:
            vat_percentage = self._settings.default_vat_percentage
            customer = {
                "name": body.get("customerName") or "",
                "trn": body.get("customerTRN") or "",
                "address": body.get("customerAddress") or "",
            }
            document.update(
                customer=customer,
                do_no=body.get("do_no") or "",
                job_no=body.get("job_no") or "",
                payment_terms=body.get("payment_terms") or "",
                date=invoice_date.isoformat(),
                customerTRN=customer["trn"],
                customerName=customer["name"],
                customerAddress=customer["address"],
            )
            if body.get("taxRate") is not None:
                document["taxRate"] = to_number(body["taxRate"])

        vehicle_id: str | None = None
        if body.get("vehicleId"):
            vehicle_row = await self._vehicles.get(body["vehicleId"])
            if vehicle_row is not None:
                vehicle_id = vehicle_row.vehicle_id
                document["vehicle"] = _vehicle_snapshot(vehicle_to_dict(vehicle_row))
            else:
                logger.info("Vehicle %s not found; creating invoice without it", body["vehicleId"])

        rows = build_items(mode, items, vat_percentage=vat_percentage)
        totals = _priced_totals(rows, document.get("taxRate", 0))
        words = to_words(totals.grand_total)
        document.update(
            items=rows,
            **totals.as_document(),
            totalInWords=words,
            amount_in_words=words,
            origin=body.get("origin") or "",
            destination=body.get("destination") or "",
            notes=body.get("notes") or "",
            dueDate=body.get("dueDate") or None,
        )

        allocated = await self._allocator.allocate(mode, invoice_date)
        row = await self._invoices.create(
            invoice_id=uuid.uuid4().hex,
            business_mode=mode.value,
            invoice_number=allocated.invoice_number,
            sequence=allocated.sequence,
            document=document,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
        )
        result = invoice_to_dict(row)
        await self._session.commit()

        logger.info(
            "Created invoice %s (%s) number=%s total=%.2f",
            row.invoice_id,
            mode.value,
            allocated.invoice_number,
            totals.grand_total,
        )
        await self._events.emit(EventType.INVOICE_CREATED, data=result, correlation_id=correlation_id)
        return result

    # -- Read ----------------------------------------------------------------

    async def list_invoices(self, business_mode: str | None = None) -> list[dict[str, Any]]:
        """List invoices newest first, totals backfilled and relations attached.

        Invoices stored without a business mode match any filter.
        """
        hydrator = _Hydrator(self._session)
        results = []
        for row in await self._invoices.list_all(business_mode):
            results.append(await hydrator.hydrate(backfill_totals(invoice_to_dict(row))))
        return results

    async def get_invoice(self, invoice_id: str) -> dict[str, Any]:
        """Return one invoice with totals backfilled and relations attached.

        The customer's name, TRN and address are also surfaced at the top
        level.
        """
        row = await self._invoices.get(invoice_id)
        if row is None:
            raise NotFoundError("Invoice", invoice_id)
        data = await _Hydrator(self._session).hydrate(backfill_totals(invoice_to_dict(row)))

        customer = data.get("customer") if isinstance(data.get("customer"), Mapping) else {}
        if data.get("customerId") and customer:
            data["customerTRN"] = customer.get("trn") or ""
            data["customerName"] = customer.get("name") or ""
            data["customerAddress"] = customer.get("address") or ""
        if data.get("businessMode") == BusinessMode.B2B.value:
            data["customerTRN"] = data.get("customerTRN") or customer.get("trn") or ""
            data["customerName"] = data.get("customerName") or customer.get("name") or ""
            data["customerAddress"] = data.get("customerAddress") or customer.get("address") or ""
        return data

    async def get_stats(self, business_mode: str | None = None) -> dict[str, Any]:
        """Counts and revenue sums across invoices matching *business_mode*."""
        stats: dict[str, Any] = {
            "totalInvoices": 0,
            "totalRevenue": 0.0,
            "pendingAmount": 0.0,
            "paidAmount": 0.0,
            "pendingInvoices": 0,
            "paidInvoices": 0,
        }
        for row in await self._invoices.list_all(business_mode):
            revenue = invoice_revenue(row.document or {})
            stats["totalInvoices"] += 1
            stats["totalRevenue"] += revenue
            if row.status == "pending":
                stats["pendingInvoices"] += 1
                stats["pendingAmount"] += revenue
            elif row.status == "paid":
                stats["paidInvoices"] += 1
                stats["paidAmount"] += revenue
        return stats

    # -- Update --------------------------------------------------------------

    async def update_invoice(
        self,
        invoice_id: str,
        changes: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Apply a partial update.

        Items and totals are rebuilt only when ``items`` is given, with the
        stored business mode choosing the line shape.  Once the merged
        invoice is settled, an active linked contract is completed.

        Raises
        ------
        NotFoundError
            If the invoice does not exist.
        ValidationError
            If the status, a B2B status axis or the items are invalid, or a
            B2B status axis is sent for a B2C invoice.
        """
        row = await self._invoices.get(invoice_id)
        if row is None:
            raise NotFoundError("Invoice", invoice_id)

        mode = BusinessMode.parse(row.business_mode) or BusinessMode.B2C
        current = dict(row.document or {})
        updates: dict[str, Any] = {}

        status = changes.get("status")
        if status is not None and status not in INVOICE_STATUSES:
            raise ValidationError(f"Invalid invoice status '{status}'")
        updates.update(_b2b_statuses(mode, changes))

        if changes.get("items") is not None:
            validate_items(mode, changes["items"])
            if mode is BusinessMode.B2C:
                vat_percentage = resolve_vat_percentage(
                    changes.get("vatPercentage"),
                    current.get("vatPercentage"),
                    self._settings.default_vat_percentage,
                )
                updates["vatPercentage"] = vat_percentage
                tax_rate: Any = 0
            else:
                vat_percentage = self._settings.default_vat_percentage
                tax_rate = changes["taxRate"] if changes.get("taxRate") is not None else current.get("taxRate", 0)
                if changes.get("taxRate") is not None:
                    updates["taxRate"] = to_number(changes["taxRate"])
            rows = build_items(mode, changes["items"], vat_percentage=vat_percentage)
            totals = _priced_totals(rows, tax_rate)
            words = to_words(totals.grand_total)
            updates.update(items=rows, **totals.as_document(), totalInWords=words, amount_in_words=words)

        if changes.get("date") is not None and mode is BusinessMode.B2B:
            parsed = parse_logical_date(changes["date"])
            if changes["date"] and parsed is None:
                raise ValidationError("Invalid invoice date")
            updates["date"] = parsed.isoformat() if parsed else None

        if changes.get("vehicleId"):
            vehicle_row = await self._vehicles.get(changes["vehicleId"])
            if vehicle_row is not None:
                row.vehicle_id = vehicle_row.vehicle_id
                updates["vehicle"] = _vehicle_snapshot(vehicle_to_dict(vehicle_row))
            else:
                logger.info("Vehicle %s not found; leaving invoice %s vehicle unchanged", changes["vehicleId"], invoice_id)

        for key in _SHARED_UPDATE_FIELDS:
            if key in changes:
                updates[key] = changes[key]
        if mode is BusinessMode.B2C:
            for key in _B2C_UPDATE_FIELDS:
                if key in changes:
                    updates[key] = changes[key]
            if changes.get("vatPercentage") is not None and "items" not in updates:
                updates["vatPercentage"] = resolve_vat_percentage(changes["vatPercentage"], current.get("vatPercentage"))
        else:
            for key in _B2B_UPDATE_FIELDS:
                if key in changes:
                    updates[key] = changes[key]
            customer_changes = {
                field: changes[key]
                for key, field in (("customerName", "name"), ("customerTRN", "trn"), ("customerAddress", "address"))
                if key in changes
            }
            if customer_changes:
                customer = {**(current.get("customer") or {}), **customer_changes}
                updates["customer"] = customer
                updates.update(
                    customerName=customer.get("name") or "",
                    customerTRN=customer.get("trn") or "",
                    customerAddress=customer.get("address") or "",
                )

        row.document = {**current, **updates}
        if status is not None:
            row.status = status
        await self._invoices.save(row)
        result = invoice_to_dict(row)
        await self._session.commit()

        contract_id = row.contract_id
        contract_completed = False
        if contract_id and _is_settled(mode, result["status"], result):
            try:
                contract_completed = await self._contracts.complete_if_active(contract_id)
                await self._session.commit()
            except SQLAlchemyError:
                await self._session.rollback()
                logger.exception("Failed to auto-complete contract %s from invoice %s", contract_id, invoice_id)

        await self._events.emit(
            EventType.INVOICE_UPDATED,
            data={"id": invoice_id, **updates, "status": result["status"]},
            correlation_id=correlation_id,
        )
        if contract_completed:
            await self._events.emit(
                EventType.CONTRACT_UPDATED,
                data={"id": contract_id, "status": "completed", "invoiceId": invoice_id},
                correlation_id=correlation_id,
            )
        return result

    # -- Delete --------------------------------------------------------------

    async def delete_invoice(self, invoice_id: str, *, correlation_id: str | None = None) -> dict[str, Any]:
        """Delete an invoice and close the gap in its partition's sequences.

        Invoices without a sequence (or a parseable number), or whose
        business mode is missing or unknown, are deleted without renumbering.

        Raises
        ------
        NotFoundError
            If the invoice does not exist.
        """
        row = await self._invoices.get(invoice_id)
        if row is None:
            raise NotFoundError("Invoice", invoice_id)

        sequence = row.sequence if row.sequence is not None else parse_sequence(row.invoice_number)
        mode = BusinessMode.parse(row.business_mode)
        business_mode = row.business_mode

        resequenced = 0
        if sequence is None or mode is None:
            logger.info("Deleting invoice %s without resequencing (mode=%r)", invoice_id, row.business_mode)
            await self._invoices.delete(invoice_id)
        else:
            resequenced = await self._resequencer.delete_and_compact(row, mode)
        await self._session.commit()

        await self._events.emit(
            EventType.INVOICE_DELETED,
            data={"id": invoice_id, "businessMode": business_mode, "resequenced": resequenced},
            correlation_id=correlation_id,
        )
        return {"message": "Invoice deleted successfully", "id": invoice_id, "resequenced": resequenced}

    # -- Resequence ----------------------------------------------------------

    async def resequence(self, *, correlation_id: str | None = None) -> dict[str, int]:
        """Renumber every partition and reset the counters; returns counts per mode."""
        counts = await self._resequencer.resequence_all()
        await self._session.commit()
        await self._events.emit(EventType.INVOICES_RESEQUENCED, data={"partitions": counts}, correlation_id=correlation_id)
        return counts
