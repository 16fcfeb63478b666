"""API router for invoices.

Covers the invoice lifecycle (create, list, detail, partial update,
delete with partition compaction), the statistics summary, and the
confirmed batch resequencing job.
"""

from __future__ import annotations

import logging
from typing import Any

from cargo_core.billing.errors import NotFoundError, SequenceAllocationError, ValidationError
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from cargo_api.dependencies import BillingSettingsDep, CorrelationDep, EventBusDep, SessionDep
from cargo_api.schemas import InvoiceDeleteResponse, InvoiceStatsResponse, ResequenceResponse
from cargo_api.services.invoice_service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _InvoiceFields(BaseModel):
    """Fields shared by create and update bodies."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]] | None = Field(None, description="Line items; shape depends on the business mode.")
    vehicle_id: str | None = Field(None, alias="vehicleId")
    origin: str | None = None
    destination: str | None = None
    notes: str | None = None
    due_date: str | None = Field(None, alias="dueDate")

    # B2C
    customer_po_number: str | None = Field(None, alias="customerPONumber")
    payment_terms_b2c: str | None = Field(None, alias="paymentTerms")
    vat_percentage: float | None = Field(None, ge=0, le=100, alias="vatPercentage")

    # B2B
    customer_name: str | None = Field(None, alias="customerName")
    customer_trn: str | None = Field(None, alias="customerTRN")
    customer_address: str | None = Field(None, alias="customerAddress")
    do_no: str | None = None
    job_no: str | None = None
    payment_terms: str | None = None
    date: str | None = Field(None, description="B2B invoice date (ISO 8601).")
    tax_rate: float | None = Field(None, ge=0, le=100, alias="taxRate")


class CreateInvoiceRequest(_InvoiceFields):
    """Request body for creating an invoice."""

    business_mode: str | None = Field(None, alias="businessMode", description="``b2c`` (default) or ``b2b``.")
    customer_id: str | None = Field(None, alias="customerId")


class UpdateInvoiceRequest(_InvoiceFields):
    """Partial update; only the fields present in the body are applied."""

    status: str | None = None
    cargo_status: str | None = Field(
        None, alias="cargoStatus", description="B2B only: awaiting_pickup, in_transit, delivered or returned."
    )
    transporter_payment_status: str | None = Field(
        None, alias="transporterPaymentStatus", description="B2B only: unpaid or paid."
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_invoice(
    body: CreateInvoiceRequest,
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Create an invoice with the next number in its business mode."""
    service = InvoiceService(session, billing, event_bus=events)
    try:
        return await service.create_invoice(
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SequenceAllocationError as exc:
        logger.error("Invoice create failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("")
async def list_invoices(
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    business_mode: str | None = Query(None, alias="businessMode", description="Filter by business mode."),
) -> list[dict[str, Any]]:
    """List invoices newest first."""
    service = InvoiceService(session, billing, event_bus=events)
    return await service.list_invoices(business_mode)


@router.get("/stats/summary", response_model=InvoiceStatsResponse)
async def invoice_stats(
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    business_mode: str | None = Query(None, alias="businessMode", description="Filter by business mode."),
) -> dict[str, Any]:
    """Invoice counts and revenue totals."""
    service = InvoiceService(session, billing, event_bus=events)
    return await service.get_stats(business_mode)


@router.post("/resequence", response_model=ResequenceResponse)
async def resequence_invoices(
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
    confirm: bool = Query(False, description="Must be true to run the job."),
) -> dict[str, Any]:
    """Renumber every partition from scratch and reset the counters."""
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Resequencing renumbers every invoice; pass confirm=true to proceed",
        )
    service = InvoiceService(session, billing, event_bus=events)
    counts = await service.resequence(correlation_id=correlation_id)
    return {"message": "Invoices resequenced", "partitions": counts}


@router.get("/{invoice_id}")
async def get_invoice(
    invoice_id: str,
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
) -> dict[str, Any]:
    """Return one invoice with its related records attached."""
    service = InvoiceService(session, billing, event_bus=events)
    try:
        return await service.get_invoice(invoice_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/{invoice_id}")
async def update_invoice(
    invoice_id: str,
    body: UpdateInvoiceRequest,
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Apply a partial update to an invoice."""
    service = InvoiceService(session, billing, event_bus=events)
    try:
        return await service.update_invoice(
            invoice_id,
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{invoice_id}", response_model=InvoiceDeleteResponse)
async def delete_invoice(
    invoice_id: str,
    session: SessionDep,
    billing: BillingSettingsDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Delete an invoice and renumber the rest of its partition."""
    service = InvoiceService(session, billing, event_bus=events)
    try:
        return await service.delete_invoice(invoice_id, correlation_id=correlation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
