"""API router for fleet vehicles."""

from __future__ import annotations

from typing import Any

from cargo_core.billing.errors import ConflictError, NotFoundError, ValidationError
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from cargo_api.dependencies import CorrelationDep, EventBusDep, SessionDep
from cargo_api.schemas import DeleteResponse, VehicleStatsResponse
from cargo_api.services.directory_service import VehicleService

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


class VehicleRequest(BaseModel):
    """Request body for creating or updating a vehicle."""

    model_config = ConfigDict(populate_by_name=True)

    vehicle_name: str | None = Field(None, alias="vehicleName")
    vehicle_number: str | None = Field(None, alias="vehicleNumber", max_length=64)
    type: str | None = None
    capacity: float | None = Field(None, ge=0)
    driver_name: str | None = Field(None, alias="driverName")
    driver_phone: str | None = Field(None, alias="driverPhone")
    status: str | None = None
    notes: str | None = None


@router.post("", status_code=201)
async def create_vehicle(
    body: VehicleRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = VehicleService(session, event_bus=events)
    try:
        return await service.create_vehicle(
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("")
async def list_vehicles(session: SessionDep, events: EventBusDep) -> list[dict[str, Any]]:
    return await VehicleService(session, event_bus=events).list_vehicles()


@router.get("/stats/summary", response_model=VehicleStatsResponse)
async def vehicle_stats(session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    return await VehicleService(session, event_bus=events).vehicle_stats()


@router.get("/{vehicle_id}")
async def get_vehicle(vehicle_id: str, session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    try:
        return await VehicleService(session, event_bus=events).get_vehicle(vehicle_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/{vehicle_id}")
async def update_vehicle(
    vehicle_id: str,
    body: VehicleRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = VehicleService(session, event_bus=events)
    try:
        return await service.update_vehicle(
            vehicle_id,
            body.model_dump(by_alias=True, exclude_unset=True),
            correlation_id=correlation_id,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/{vehicle_id}", response_model=DeleteResponse)
async def delete_vehicle(
    vehicle_id: str,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = VehicleService(session, event_bus=events)
    try:
        return await service.delete_vehicle(vehicle_id, correlation_id=correlation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
