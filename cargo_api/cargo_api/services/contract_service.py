"""Service layer for transporter contracts.

A contract links a transporter to the invoices it carries.  Completing a
contract marks its unfinished invoices delivered and paid; completing the
last step of an invoice completes an active contract (see
:meth:`ContractService.complete_if_active`).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from cargo_core.billing.errors import NotFoundError, ValidationError
from cargo_core.billing.totals import round2, to_number
from cargo_core.state.repository import ContractRepository, InvoiceRepository, TransporterRepository
from cargo_core.state.tables import ContractTable
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api.services.event_bus import EventBus, EventType, get_event_bus
from cargo_api.services.numbering_service import parse_logical_date

logger = logging.getLogger(__name__)

CONTRACT_STATUSES = frozenset({"active", "completed", "cancelled"})

# Invoices already in one of these states are left alone when a contract completes.
_FINAL_CARGO_STATUSES = frozenset({"delivered", "returned"})


def contract_to_dict(row: ContractTable) -> dict[str, Any]:
    return {
        "id": row.contract_id,
        "transporterId": row.transporter_id,
        "status": row.status,
        "origin": row.origin,
        "destination": row.destination,
        "distance": row.distance,
        "agreedRate": row.agreed_rate,
        "totalAmount": row.total_amount,
        "terms": row.terms,
        "invoiceIds": list(row.invoice_ids or []),
        "startDate": row.start_date.isoformat() if row.start_date else None,
        "endDate": row.end_date.isoformat() if row.end_date else None,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


class ContractService:
    """Contract creation and status transitions.

    Parameters
    ----------
    session:
        Active database session.
    event_bus:
        Sink for ``contract.*`` events; defaults to the global bus.
    """

    def __init__(self, session: AsyncSession, *, event_bus: EventBus | None = None) -> None:
        self._session = session
        self._events = event_bus or get_event_bus()
        self._contracts = ContractRepository(session)
        self._transporters = TransporterRepository(session)
        self._invoices = InvoiceRepository(session)

    async def create_contract(
        self,
        transporter_id: str,
        body: Mapping[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create an active contract and link the listed invoices to it.

        ``totalAmount`` is the agreed rate times the distance, or the rate
        alone when no distance is given.

        Raises
        ------
        ValidationError
            If origin, destination or agreed rate is missing.
        NotFoundError
            If the transporter does not exist.
        """
        agreed_rate = to_number(body.get("agreedRate"))
        if not body.get("origin") or not body.get("destination") or not agreed_rate:
            raise ValidationError("Origin, destination, and agreed rate are required")
        if await self._transporters.get(transporter_id) is None:
            raise NotFoundError("Transporter", transporter_id)

        distance = to_number(body.get("distance"))
        raw_ids = body.get("invoiceIds")
        invoice_ids = [str(i) for i in raw_ids if i] if isinstance(raw_ids, list) else []

        row = await self._contracts.create(
            contract_id=uuid.uuid4().hex,
            transporter_id=transporter_id,
            origin=str(body["origin"]),
            destination=str(body["destination"]),
            agreed_rate=agreed_rate,
            total_amount=round2(agreed_rate * (distance or 1)),
            distance=distance,
            terms=body.get("terms") or "",
            invoice_ids=invoice_ids,
            start_date=parse_logical_date(body.get("startDate")),
            end_date=parse_logical_date(body.get("endDate")),
        )
        linked = await self._invoices.link_contract(
            invoice_ids,
            contract_id=row.contract_id,
            transporter_id=transporter_id,
        )
        if linked != len(invoice_ids):
            logger.warning(
                "Contract %s lists %d invoice(s) but only %d exist",
                row.contract_id,
                len(invoice_ids),
                linked,
            )

        result = contract_to_dict(row)
        await self._session.commit()
        await self._events.emit(EventType.CONTRACT_CREATED, data=result, correlation_id=correlation_id)
        return result

    async def list_contracts(self, transporter_id: str) -> list[dict[str, Any]]:
        return [contract_to_dict(row) for row in await self._contracts.list_for_transporter(transporter_id)]

    async def update_status(
        self,
        transporter_id: str,
        contract_id: str,
        status: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Move a contract to *status*.

        Completing a contract marks each linked invoice that is neither
        delivered, returned nor paid as delivered, transporter-paid and
        paid.

        Raises
        ------
        NotFoundError
            If the contract does not exist for this transporter.
        ValidationError
            If *status* is not a contract status.
        """
        if status not in CONTRACT_STATUSES:
            raise ValidationError(f"Invalid contract status '{status}'")
        row = await self._contracts.get(contract_id)
        if row is None or row.transporter_id != transporter_id:
            raise NotFoundError("Contract", contract_id)

        await self._contracts.update_status(contract_id, status)
        synced = 0
        if status == "completed":
            synced = await self._complete_invoices(row.invoice_ids or [])

        await self._session.refresh(row)
        result = contract_to_dict(row)
        await self._session.commit()
        await self._events.emit(
            EventType.CONTRACT_UPDATED,
            data={**result, "invoicesSynced": synced},
            correlation_id=correlation_id,
        )
        return result

    async def complete_if_active(self, contract_id: str) -> bool:
        """Transition *contract_id* to ``completed`` if it is still active.

        Does not commit.  Returns ``True`` when the status changed.
        """
        row = await self._contracts.get(contract_id)
        if row is None:
            logger.warning("Invoice references missing contract %s", contract_id)
            return False
        if row.status != "active":
            return False
        await self._contracts.update_status(contract_id, "completed")
        logger.info("Contract %s auto-completed from invoice update", contract_id)
        return True

    async def _complete_invoices(self, invoice_ids: list[str]) -> int:
        synced = 0
        for invoice in await self._invoices.list_by_ids(invoice_ids):
            document = dict(invoice.document or {})
            if document.get("cargoStatus") in _FINAL_CARGO_STATUSES or invoice.status == "paid":
                continue
            document.update(cargoStatus="delivered", transporterPaymentStatus="paid")
            invoice.document = document
            invoice.status = "paid"
            await self._invoices.save(invoice)
            synced += 1
        if synced:
            logger.info("Marked %d invoice(s) complete with their contract", synced)
        return synced
