"""API router for transporters and their contracts.

Contracts are always addressed through their transporter; a contract id
under another transporter is reported as not found.
"""

from __future__ import annotations

from typing import Any

from cargo_core.billing.errors import ConflictError, NotFoundError, ValidationError
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from cargo_api.dependencies import CorrelationDep, EventBusDep, SessionDep
from cargo_api.schemas import DeleteResponse, TransporterStatsResponse
from cargo_api.services.contract_service import ContractService
from cargo_api.services.directory_service import TransporterService

router = APIRouter(prefix="/transporters", tags=["transporters"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TransporterRequest(BaseModel):
    """Request body for registering or updating a transporter."""

    model_config = ConfigDict(populate_by_name=True)

    company_name: str | None = Field(None, alias="companyName", max_length=256)
    contact_person: str | None = Field(None, alias="contactPerson", max_length=256)
    email: str | None = Field(None, max_length=256)
    phone: str | None = None
    address: str | None = None
    license_number: str | None = Field(None, alias="licenseNumber")
    status: str | None = None
    vehicles: list[str] | None = Field(None, description="Ids of vehicles the transporter operates.")


class CreateContractRequest(BaseModel):
    """Request body for a new transport contract."""

    model_config = ConfigDict(populate_by_name=True)

    origin: str | None = None
    destination: str | None = None
    agreed_rate: float | None = Field(None, alias="agreedRate", ge=0)
    distance: float | None = Field(None, ge=0)
    terms: str | None = None
    invoice_ids: list[str] = Field(default_factory=list, alias="invoiceIds")
    start_date: str | None = Field(None, alias="startDate")
    end_date: str | None = Field(None, alias="endDate")


class AssignVehiclesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    vehicle_ids: list[str] | None = Field(None, alias="vehicleIds")


class UpdateContractRequest(BaseModel):
    """Request body for a contract status change."""

    status: str = Field(..., min_length=1, description="active, completed or cancelled.")


# ---------------------------------------------------------------------------
# Transporters
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_transporter(
    body: TransporterRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = TransporterService(session, event_bus=events)
    try:
        return await service.create_transporter(
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("")
async def list_transporters(session: SessionDep, events: EventBusDep) -> list[dict[str, Any]]:
    return await TransporterService(session, event_bus=events).list_transporters()


@router.get("/stats/summary", response_model=TransporterStatsResponse)
async def transporter_stats(session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    return await TransporterService(session, event_bus=events).transporter_stats()


@router.get("/{transporter_id}")
async def get_transporter(transporter_id: str, session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    """Return a transporter with its vehicles resolved."""
    try:
        return await TransporterService(session, event_bus=events).get_transporter(transporter_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/{transporter_id}")
async def update_transporter(
    transporter_id: str,
    body: TransporterRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = TransporterService(session, event_bus=events)
    try:
        return await service.update_transporter(
            transporter_id,
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/{transporter_id}", response_model=DeleteResponse)
async def delete_transporter(
    transporter_id: str,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Delete a transporter; refused while any contract references it."""
    service = TransporterService(session, event_bus=events)
    try:
        return await service.delete_transporter(transporter_id, correlation_id=correlation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/{transporter_id}/assign-vehicles")
async def assign_vehicles(
    transporter_id: str,
    body: AssignVehiclesRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Add vehicles to a transporter's fleet; ids already listed are skipped."""
    service = TransporterService(session, event_bus=events)
    try:
        return await service.assign_vehicles(transporter_id, body.vehicle_ids, correlation_id=correlation_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{transporter_id}/available-vehicles")
async def available_vehicles(transporter_id: str, session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    try:
        return await TransporterService(session, event_bus=events).available_vehicles(transporter_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@router.post("/{transporter_id}/contracts", status_code=201)
async def create_contract(
    transporter_id: str,
    body: CreateContractRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Create an active contract and link the listed invoices to it."""
    service = ContractService(session, event_bus=events)
    try:
        return await service.create_contract(
            transporter_id,
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/{transporter_id}/contracts")
async def list_contracts(transporter_id: str, session: SessionDep, events: EventBusDep) -> list[dict[str, Any]]:
    return await ContractService(session, event_bus=events).list_contracts(transporter_id)


@router.put("/{transporter_id}/contracts/{contract_id}")
async def update_contract(
    transporter_id: str,
    contract_id: str,
    body: UpdateContractRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    """Change a contract's status; completing it settles its invoices."""
    service = ContractService(session, event_bus=events)
    try:
        return await service.update_status(
            transporter_id,
            contract_id,
            body.status,
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
