"""Service layer for the reference entities invoices link to.

Customers, vehicles and transporters are mostly plain CRUD records.  The
rules beyond storage are the required fields, vehicle-number and
transporter-email uniqueness, and the refusal to delete a transporter
that still has contracts.  Transporters also list the vehicles they
operate, and both fleets report status counts.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from cargo_core.billing.errors import ConflictError, NotFoundError, ValidationError
from cargo_core.billing.totals import to_number
from cargo_core.state.repository import (
    ContractRepository,
    CustomerRepository,
    TransporterRepository,
    VehicleRepository,
)
from cargo_core.state.tables import CustomerTable, TransporterTable, VehicleTable
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api.services.event_bus import EventBus, EventType, get_event_bus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def customer_to_dict(row: CustomerTable) -> dict[str, Any]:
    return {
        "id": row.customer_id,
        "name": row.name,
        "trn": row.trn,
        "email": row.email,
        "phone": row.phone,
        "address": row.address,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def vehicle_to_dict(row: VehicleTable) -> dict[str, Any]:
    return {
        "id": row.vehicle_id,
        "vehicleName": row.vehicle_name,
        "vehicleNumber": row.vehicle_number,
        "type": row.type,
        "capacity": row.capacity,
        "driverName": row.driver_name,
        "driverPhone": row.driver_phone,
        "status": row.status,
        "notes": row.notes,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def transporter_to_dict(row: TransporterTable) -> dict[str, Any]:
    return {
        "id": row.transporter_id,
        "companyName": row.company_name,
        "contactPerson": row.contact_person,
        "email": row.email,
        "phone": row.phone,
        "address": row.address,
        "licenseNumber": row.license_number,
        "status": row.status,
        "vehicles": list(row.vehicles or []),
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


# camelCase request keys -> column names.
_CUSTOMER_FIELDS = {"name": "name", "trn": "trn", "email": "email", "phone": "phone", "address": "address"}
_VEHICLE_FIELDS = {
    "vehicleName": "vehicle_name",
    "vehicleNumber": "vehicle_number",
    "type": "type",
    "capacity": "capacity",
    "driverName": "driver_name",
    "driverPhone": "driver_phone",
    "status": "status",
    "notes": "notes",
}
_TRANSPORTER_FIELDS = {
    "companyName": "company_name",
    "contactPerson": "contact_person",
    "email": "email",
    "phone": "phone",
    "address": "address",
    "licenseNumber": "license_number",
    "status": "status",
    "vehicles": "vehicles",
}


def _columns(body: Mapping[str, Any], fields: Mapping[str, str]) -> dict[str, Any]:
    return {column: body[key] for key, column in fields.items() if key in body and body[key] is not None}


def _vehicle_refs(entries: list[Any]) -> list[str]:
    """Vehicle ids from a transporter's list, which may hold ids or inline records."""
    refs = []
    for entry in entries:
        ref = entry.get("id") if isinstance(entry, Mapping) else entry
        if isinstance(ref, str) and ref:
            refs.append(ref)
    return refs


class _DirectoryService:
    def __init__(self, session: AsyncSession, *, event_bus: EventBus | None = None) -> None:
        self._session = session
        self._events = event_bus or get_event_bus()

    async def _commit_and_emit(
        self,
        event_type: EventType,
        data: dict[str, Any],
        correlation_id: str | None,
    ) -> None:
        await self._session.commit()
        await self._events.emit(event_type, data=data, correlation_id=correlation_id)


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


class CustomerService(_DirectoryService):
    """CRUD for customers."""

    def __init__(self, session: AsyncSession, *, event_bus: EventBus | None = None) -> None:
        super().__init__(session, event_bus=event_bus)
        self._repo = CustomerRepository(session)

    async def create_customer(self, body: Mapping[str, Any], *, correlation_id: str | None = None) -> dict[str, Any]:
        if not body.get("name"):
            raise ValidationError("Customer name is required")
        columns = _columns(body, _CUSTOMER_FIELDS)
        row = await self._repo.create(customer_id=uuid.uuid4().hex, **columns)
        result = customer_to_dict(row)
        await self._commit_and_emit(EventType.CUSTOMER_CREATED, result, correlation_id)
        return result

    async def list_customers(self) -> list[dict[str, Any]]:
        return [customer_to_dict(row) for row in await self._repo.list_all()]

    async def get_customer(self, customer_id: str) -> dict[str, Any]:
        row = await self._repo.get(customer_id)
        if row is None:
            raise NotFoundError("Customer", customer_id)
        return customer_to_dict(row)

    async def update_customer(
        self,
        customer_id: str,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        if "name" in body and not body["name"]:
            raise ValidationError("Customer name cannot be empty")
        row = await self._repo.update(customer_id, **_columns(body, _CUSTOMER_FIELDS))
        if row is None:
            raise NotFoundError("Customer", customer_id)
        result = customer_to_dict(row)
        await self._commit_and_emit(EventType.CUSTOMER_UPDATED, result, correlation_id)
        return result

    async def delete_customer(self, customer_id: str, *, correlation_id: str | None = None) -> dict[str, Any]:
        if not await self._repo.delete(customer_id):
            raise NotFoundError("Customer", customer_id)
        await self._commit_and_emit(EventType.CUSTOMER_DELETED, {"id": customer_id}, correlation_id)
        return {"message": "Customer deleted", "id": customer_id}


# ---------------------------------------------------------------------------
# Vehicles
# ---------------------------------------------------------------------------


class VehicleService(_DirectoryService):
    """CRUD for fleet vehicles; vehicle numbers are unique."""

    def __init__(self, session: AsyncSession, *, event_bus: EventBus | None = None) -> None:
        super().__init__(session, event_bus=event_bus)
        self._repo = VehicleRepository(session)

    async def create_vehicle(self, body: Mapping[str, Any], *, correlation_id: str | None = None) -> dict[str, Any]:
        """Create a vehicle.

        Raises
        ------
        ValidationError
            If the vehicle number, type or capacity is missing.
        ConflictError
            If the vehicle number is taken.
        """
        if not body.get("vehicleNumber") or not body.get("type") or not body.get("capacity"):
            raise ValidationError("Vehicle number, type, and capacity are required")
        columns = _columns(body, _VEHICLE_FIELDS)
        columns["capacity"] = to_number(columns["capacity"])
        try:
            row = await self._repo.create(vehicle_id=uuid.uuid4().hex, **columns)
        except ValueError as exc:
            raise ConflictError(str(exc)) from exc
        result = vehicle_to_dict(row)
        await self._commit_and_emit(EventType.VEHICLE_CREATED, result, correlation_id)
        return result

    async def list_vehicles(self) -> list[dict[str, Any]]:
        return [vehicle_to_dict(row) for row in await self._repo.list_all()]

    async def get_vehicle(self, vehicle_id: str) -> dict[str, Any]:
        row = await self._repo.get(vehicle_id)
        if row is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return vehicle_to_dict(row)

    async def update_vehicle(
        self,
        vehicle_id: str,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        columns = _columns(body, _VEHICLE_FIELDS)
        # Empty number, type or status leave the stored value alone.
        for column in ("vehicle_number", "type", "status"):
            if column in columns and not columns[column]:
                del columns[column]
        if "capacity" in columns:
            columns["capacity"] = to_number(columns["capacity"])
        try:
            row = await self._repo.update(vehicle_id, **columns)
        except ValueError as exc:
            raise ConflictError(str(exc)) from exc
        if row is None:
            raise NotFoundError("Vehicle", vehicle_id)
        result = vehicle_to_dict(row)
        await self._commit_and_emit(EventType.VEHICLE_UPDATED, result, correlation_id)
        return result

    async def delete_vehicle(self, vehicle_id: str, *, correlation_id: str | None = None) -> dict[str, Any]:
        if not await self._repo.delete(vehicle_id):
            raise NotFoundError("Vehicle", vehicle_id)
        await self._commit_and_emit(EventType.VEHICLE_DELETED, {"id": vehicle_id}, correlation_id)
        return {"message": "Vehicle deleted successfully", "id": vehicle_id}

    async def vehicle_stats(self) -> dict[str, Any]:
        """Fleet size by status and the summed capacity of every vehicle."""
        counts, capacity = await self._repo.status_summary()
        return {
            "totalVehicles": sum(counts.values()),
            "availableVehicles": counts.get("available", 0),
            "inTransitVehicles": counts.get("in-transit", 0),
            "maintenanceVehicles": counts.get("maintenance", 0),
            "totalCapacity": capacity,
        }


# ---------------------------------------------------------------------------
# Transporters
# ---------------------------------------------------------------------------


class TransporterService(_DirectoryService):
    """Transporters, the vehicles they operate, and fleet-wide counts."""

    def __init__(self, session: AsyncSession, *, event_bus: EventBus | None = None) -> None:
        super().__init__(session, event_bus=event_bus)
        self._repo = TransporterRepository(session)
        self._vehicles = VehicleRepository(session)
        self._contracts = ContractRepository(session)

    async def create_transporter(
        self,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a transporter.

        Raises
        ------
        ValidationError
            If the company name, contact person or email is missing.
        ConflictError
            If another transporter uses the email.
        """
        if not body.get("companyName") or not body.get("contactPerson") or not body.get("email"):
            raise ValidationError("Company name, contact person, and email are required")
        try:
            row = await self._repo.create(
                transporter_id=uuid.uuid4().hex,
                company_name=body["companyName"],
                contact_person=body["contactPerson"],
                email=body["email"],
                phone=body.get("phone") or "",
                address=body.get("address") or "",
                license_number=body.get("licenseNumber") or "",
                status=body.get("status") or "active",
                vehicles=list(body.get("vehicles") or []),
            )
        except ValueError as exc:
            raise ConflictError(str(exc)) from exc
        result = transporter_to_dict(row)
        await self._commit_and_emit(EventType.TRANSPORTER_CREATED, result, correlation_id)
        return result

    async def list_transporters(self) -> list[dict[str, Any]]:
        return [transporter_to_dict(row) for row in await self._repo.list_all()]

    async def get_transporter(self, transporter_id: str) -> dict[str, Any]:
        """Return a transporter with vehicle ids resolved to vehicle records.

        Ids that no longer resolve are dropped.
        """
        return await self._resolved(await self._require(transporter_id))

    async def update_transporter(
        self,
        transporter_id: str,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Apply a partial update.

        Empty company name, contact person, email or status leave the stored
        value alone; phone, address and licence number may be cleared.  A
        ``vehicles`` list replaces the stored one.

        Raises
        ------
        NotFoundError
            If the transporter does not exist.
        ConflictError
            If the new email belongs to another transporter.
        """
        columns = _columns(body, _TRANSPORTER_FIELDS)
        for column in ("company_name", "contact_person", "email", "status"):
            if column in columns and not columns[column]:
                del columns[column]
        if "vehicles" in columns:
            columns["vehicles"] = list(columns["vehicles"])
        try:
            row = await self._repo.update(transporter_id, **columns)
        except ValueError as exc:
            raise ConflictError(str(exc)) from exc
        if row is None:
            raise NotFoundError("Transporter", transporter_id)
        result = transporter_to_dict(row)
        await self._commit_and_emit(EventType.TRANSPORTER_UPDATED, result, correlation_id)
        return await self._resolved(row)

    async def assign_vehicles(
        self,
        transporter_id: str,
        vehicle_ids: list[str] | None,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Append vehicle ids the transporter does not already list.

        Raises
        ------
        ValidationError
            If *vehicle_ids* is empty.
        NotFoundError
            If the transporter does not exist.
        """
        if not vehicle_ids:
            raise ValidationError("Vehicle IDs array is required")
        row = await self._require(transporter_id)
        current = list(row.vehicles or [])
        known = set(_vehicle_refs(current))
        added = [vid for vid in dict.fromkeys(vehicle_ids) if vid not in known]
        updated = await self._repo.update(transporter_id, vehicles=current + added)
        if updated is None:
            raise NotFoundError("Transporter", transporter_id)
        row = updated
        logger.info("Assigned %d vehicle(s) to transporter %s", len(added), transporter_id)
        await self._commit_and_emit(EventType.TRANSPORTER_UPDATED, transporter_to_dict(row), correlation_id)
        return {
            "message": "Vehicles assigned to transporter successfully",
            "transporter": await self._resolved(row),
        }

    async def available_vehicles(self, transporter_id: str) -> dict[str, Any]:
        """Every vehicle in the fleet alongside the ids this transporter lists."""
        row = await self._require(transporter_id)
        return {
            "allVehicles": [vehicle_to_dict(v) for v in await self._vehicles.list_all()],
            "assignedVehicleIds": _vehicle_refs(row.vehicles or []),
        }

    async def transporter_stats(self) -> dict[str, Any]:
        counts = await self._repo.count_by_status()
        return {
            "totalTransporters": sum(counts.values()),
            "activeTransporters": counts.get("active", 0),
            "totalContracts": await self._contracts.count_all(),
        }

    async def _require(self, transporter_id: str) -> TransporterTable:
        row = await self._repo.get(transporter_id)
        if row is None:
            raise NotFoundError("Transporter", transporter_id)
        return row

    async def _resolved(self, row: TransporterTable) -> dict[str, Any]:
        result = transporter_to_dict(row)
        found = await self._vehicles.get_many(v for v in result["vehicles"] if isinstance(v, str))
        result["vehicles"] = [
            vehicle_to_dict(found[v]) if isinstance(v, str) else v
            for v in result["vehicles"]
            if not isinstance(v, str) or v in found
        ]
        return result

    async def delete_transporter(
        self,
        transporter_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Delete a transporter that has no contracts.

        Raises
        ------
        NotFoundError
            If the transporter does not exist.
        ValidationError
            If any contract still references it.
        """
        await self._require(transporter_id)
        if await self._contracts.count_for_transporter(transporter_id):
            raise ValidationError("Cannot delete transporter with active contracts. Cancel contracts first.")
        await self._repo.delete(transporter_id)
        await self._commit_and_emit(EventType.TRANSPORTER_DELETED, {"id": transporter_id}, correlation_id)
        return {"message": "Transporter deleted successfully", "id": transporter_id}
