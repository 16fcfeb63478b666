"""API router for customers."""

from __future__ import annotations

from typing import Any

from cargo_core.billing.errors import NotFoundError, ValidationError
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from cargo_api.dependencies import CorrelationDep, EventBusDep, SessionDep
from cargo_api.schemas import DeleteResponse
from cargo_api.services.directory_service import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


class CustomerRequest(BaseModel):
    """Request body for creating or updating a customer."""

    name: str | None = Field(None, max_length=256)
    trn: str | None = Field(None, max_length=64, description="Tax registration number.")
    email: str | None = Field(None, max_length=256)
    phone: str | None = Field(None, max_length=64)
    address: str | None = None


@router.post("", status_code=201)
async def create_customer(
    body: CustomerRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = CustomerService(session, event_bus=events)
    try:
        return await service.create_customer(body.model_dump(exclude_unset=True), correlation_id=correlation_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("")
async def list_customers(session: SessionDep, events: EventBusDep) -> list[dict[str, Any]]:
    return await CustomerService(session, event_bus=events).list_customers()


@router.get("/{customer_id}")
async def get_customer(customer_id: str, session: SessionDep, events: EventBusDep) -> dict[str, Any]:
    try:
        return await CustomerService(session, event_bus=events).get_customer(customer_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    body: CustomerRequest,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = CustomerService(session, event_bus=events)
    try:
        return await service.update_customer(
            customer_id,
            body.model_dump(exclude_unset=True),
            correlation_id=correlation_id,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{customer_id}", response_model=DeleteResponse)
async def delete_customer(
    customer_id: str,
    session: SessionDep,
    events: EventBusDep,
    correlation_id: CorrelationDep,
) -> dict[str, Any]:
    service = CustomerService(session, event_bus=events)
    try:
        return await service.delete_customer(customer_id, correlation_id=correlation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
