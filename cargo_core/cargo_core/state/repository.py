"""Repository classes providing CRUD access to the cargo ledger state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for calling
``session.commit()`` (or relying on the ``get_session`` context manager).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_core.state.tables import (
    ContractTable,
    CustomerTable,
    InvoiceTable,
    SequenceCounterTable,
    TransporterTable,
    VehicleTable,
)

logger = logging.getLogger(__name__)


def _dialect_insert(session: AsyncSession, table: Any) -> Any:
    """Return a dialect-specific ``INSERT`` construct for *table*.

    PostgreSQL and SQLite both expose ``on_conflict_do_update``; only the
    import location differs.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert(table)

    from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

    return _sqlite_insert(table)


async def _dialect_upsert(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
    set_: dict[str, Any],
    returning: Any = None,
) -> Any:
    """Dialect-aware upsert: ``INSERT ... ON CONFLICT DO UPDATE``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to upsert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names forming the unique constraint for conflict detection.
    set_:
        Column assignments applied to the existing row on conflict.  Values
        may be SQL expressions over the existing row's columns.
    returning:
        Optional column to return from the inserted or updated row.

    Returns
    -------
    The execution result from ``session.execute()``.
    """
    stmt = _dialect_insert(session, table).values(**values)
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
    if returning is not None:
        stmt = stmt.returning(returning)
    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# SequenceCounterRepository
# ---------------------------------------------------------------------------


class SequenceCounterRepository:
    """Per-partition invoice sequence counters.

    A counter row holds the highest sequence issued in its partition.  Rows
    are created lazily by the first :meth:`next_sequence` call.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def next_sequence(self, partition_key: str) -> int:
        """Atomically increment the counter and return the new value.

        A missing row is created with ``seq = 1``.  The increment and the
        read happen in one ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
        statement, so concurrent callers never observe the same value.
        """
        now = datetime.now(UTC)
        result = await _dialect_upsert(
            self._session,
            SequenceCounterTable,
            values={"partition_key": partition_key, "seq": 1, "updated_at": now},
            index_elements=["partition_key"],
            set_={"seq": SequenceCounterTable.seq + 1, "updated_at": now},
            returning=SequenceCounterTable.seq,
        )
        seq = int(result.scalar_one())
        await self._session.flush()
        return seq

    async def get(self, partition_key: str) -> int | None:
        """Return the current counter value, or ``None`` if never issued."""
        result = await self._session.execute(
            select(SequenceCounterTable.seq).where(SequenceCounterTable.partition_key == partition_key)
        )
        return result.scalar_one_or_none()

    async def lock(self, partition_key: str) -> int | None:
        """Lock the counter row for the rest of the transaction.

        Issues ``SELECT ... FOR UPDATE``; SQLite ignores the clause since its
        writer lock already serialises transactions.  Returns the current
        value, or ``None`` when the row does not exist yet.
        """
        result = await self._session.execute(
            select(SequenceCounterTable.seq)
            .where(SequenceCounterTable.partition_key == partition_key)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def set(self, partition_key: str, value: int) -> None:
        """Overwrite the counter with *value*, creating the row if needed."""
        now = datetime.now(UTC)
        await _dialect_upsert(
            self._session,
            SequenceCounterTable,
            values={"partition_key": partition_key, "seq": value, "updated_at": now},
            index_elements=["partition_key"],
            set_={"seq": value, "updated_at": now},
        )
        await self._session.flush()


# ---------------------------------------------------------------------------
# InvoiceRepository
# ---------------------------------------------------------------------------


class InvoiceRepository:
    """CRUD operations for the ``invoices`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        invoice_id: str,
        business_mode: str | None,
        invoice_number: str | None,
        sequence: int | None,
        document: dict[str, Any],
        status: str = "pending",
        customer_id: str | None = None,
        vehicle_id: str | None = None,
        transporter_id: str | None = None,
        contract_id: str | None = None,
        created_at: datetime | None = None,
    ) -> InvoiceTable:
        """Insert a new invoice row."""
        now = created_at or datetime.now(UTC)
        row = InvoiceTable(
            invoice_id=invoice_id,
            business_mode=business_mode,
            invoice_number=invoice_number,
            sequence=sequence,
            status=status,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            transporter_id=transporter_id,
            contract_id=contract_id,
            document=document,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, invoice_id: str) -> InvoiceTable | None:
        """Fetch a single invoice by ID."""
        stmt = select(InvoiceTable).where(InvoiceTable.invoice_id == invoice_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, business_mode: str | None = None) -> list[InvoiceTable]:
        """List invoices newest first.

        When *business_mode* is given, invoices stored without a mode are
        included alongside the ones that match it.
        """
        stmt = select(InvoiceTable)
        if business_mode:
            stmt = stmt.where(
                or_(
                    InvoiceTable.business_mode == business_mode,
                    InvoiceTable.business_mode.is_(None),
                )
            )
        stmt = stmt.order_by(InvoiceTable.created_at.desc(), InvoiceTable.invoice_id.desc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_chronological(self) -> list[InvoiceTable]:
        """List every invoice oldest first."""
        stmt = select(InvoiceTable).order_by(InvoiceTable.created_at.asc(), InvoiceTable.invoice_id.asc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_partition(self, business_mode: str) -> list[InvoiceTable]:
        """List invoices whose stored mode equals *business_mode*, oldest first."""
        stmt = (
            select(InvoiceTable)
            .where(InvoiceTable.business_mode == business_mode)
            .order_by(InvoiceTable.created_at.asc(), InvoiceTable.invoice_id.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_in_partition(self, business_mode: str) -> InvoiceTable | None:
        """Return the most recently created invoice of *business_mode*."""
        stmt = (
            select(InvoiceTable)
            .where(InvoiceTable.business_mode == business_mode)
            .order_by(InvoiceTable.created_at.desc(), InvoiceTable.invoice_id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_ids(self, invoice_ids: Iterable[str]) -> list[InvoiceTable]:
        """Fetch the invoices among *invoice_ids* that exist."""
        ids = list(invoice_ids)
        if not ids:
            return []
        stmt = select(InvoiceTable).where(InvoiceTable.invoice_id.in_(ids))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, row: InvoiceTable) -> InvoiceTable:
        """Flush pending changes on *row*.

        Document changes must assign a new dict to ``row.document``; in-place
        mutation of the JSON value is not tracked.
        """
        row.updated_at = datetime.now(UTC)
        await self._session.flush()
        return row

    async def set_number(
        self,
        invoice_id: str,
        invoice_number: str,
        sequence: int,
        *,
        business_mode: str | None = None,
    ) -> None:
        """Overwrite an invoice's number and sequence.

        *business_mode*, when given, also rewrites the stored partition.
        """
        values: dict[str, Any] = {
            "invoice_number": invoice_number,
            "sequence": sequence,
            "updated_at": datetime.now(UTC),
        }
        if business_mode is not None:
            values["business_mode"] = business_mode
        stmt = update(InvoiceTable).where(InvoiceTable.invoice_id == invoice_id).values(**values)
        await self._session.execute(stmt)
        await self._session.flush()

    async def link_contract(
        self,
        invoice_ids: Iterable[str],
        *,
        contract_id: str,
        transporter_id: str,
    ) -> int:
        """Attach invoices to a contract.  Returns the number of rows updated."""
        ids = list(invoice_ids)
        if not ids:
            return 0
        stmt = (
            update(InvoiceTable)
            .where(InvoiceTable.invoice_id.in_(ids))
            .values(
                contract_id=contract_id,
                transporter_id=transporter_id,
                updated_at=datetime.now(UTC),
            )
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def delete(self, invoice_id: str) -> bool:
        """Delete an invoice.  Returns ``True`` if a row was removed."""
        stmt = delete(InvoiceTable).where(InvoiceTable.invoice_id == invoice_id)
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# ContractRepository
# ---------------------------------------------------------------------------


class ContractRepository:
    """CRUD operations for the ``contracts`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        contract_id: str,
        transporter_id: str,
        origin: str,
        destination: str,
        agreed_rate: float,
        total_amount: float,
        distance: float = 0.0,
        terms: str = "",
        invoice_ids: list[str] | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> ContractTable:
        """Insert a new active contract."""
        row = ContractTable(
            contract_id=contract_id,
            transporter_id=transporter_id,
            status="active",
            origin=origin,
            destination=destination,
            distance=distance,
            agreed_rate=agreed_rate,
            total_amount=total_amount,
            terms=terms,
            invoice_ids=list(invoice_ids or []),
            start_date=start_date,
            end_date=end_date,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, contract_id: str) -> ContractTable | None:
        """Fetch a contract by ID."""
        result = await self._session.execute(select(ContractTable).where(ContractTable.contract_id == contract_id))
        return result.scalar_one_or_none()

    async def list_for_transporter(self, transporter_id: str) -> list[ContractTable]:
        """List a transporter's contracts, newest first."""
        stmt = (
            select(ContractTable)
            .where(ContractTable.transporter_id == transporter_id)
            .order_by(ContractTable.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_all(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(ContractTable))
        return int(result.scalar_one())

    async def count_for_transporter(self, transporter_id: str) -> int:
        """Count the contracts referencing *transporter_id*."""
        result = await self._session.execute(
            select(func.count()).select_from(ContractTable).where(ContractTable.transporter_id == transporter_id)
        )
        return int(result.scalar_one())

    async def update_status(self, contract_id: str, status: str) -> bool:
        """Set a contract's status.  Returns ``True`` if updated."""
        stmt = (
            update(ContractTable)
            .where(ContractTable.contract_id == contract_id)
            .values(status=status, updated_at=datetime.now(UTC))
        )
        result = await self._session.execute(stmt)
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Reference entities
# ---------------------------------------------------------------------------


class CustomerRepository:
    """CRUD operations for the ``customers`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, customer_id: str, name: str, **fields: Any) -> CustomerTable:
        """Insert a customer; *fields* are optional column values."""
        row = CustomerTable(customer_id=customer_id, name=name, **fields)
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, customer_id: str) -> CustomerTable | None:
        """Fetch a customer by ID."""
        result = await self._session.execute(select(CustomerTable).where(CustomerTable.customer_id == customer_id))
        return result.scalar_one_or_none()

    async def list_all(self) -> list[CustomerTable]:
        """List customers, newest first."""
        result = await self._session.execute(select(CustomerTable).order_by(CustomerTable.created_at.desc()))
        return list(result.scalars().all())

    async def update(self, customer_id: str, **values: Any) -> CustomerTable | None:
        """Apply *values* to a customer.  Returns ``None`` if missing."""
        row = await self.get(customer_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = datetime.now(UTC)
        await self._session.flush()
        return row

    async def delete(self, customer_id: str) -> bool:
        """Delete a customer.  Returns ``True`` if a row was removed."""
        result = await self._session.execute(delete(CustomerTable).where(CustomerTable.customer_id == customer_id))
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


class VehicleRepository:
    """CRUD operations for the ``vehicles`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        vehicle_id: str,
        vehicle_number: str,
        type: str,
        capacity: float,
        **fields: Any,
    ) -> VehicleTable:
        """Insert a vehicle.

        Raises
        ------
        ValueError
            If another vehicle already carries *vehicle_number*.
        """
        row = VehicleTable(
            vehicle_id=vehicle_id,
            vehicle_number=vehicle_number,
            type=type,
            capacity=capacity,
            **fields,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ValueError(f"Vehicle number '{vehicle_number}' already exists") from None
        return row

    async def get(self, vehicle_id: str) -> VehicleTable | None:
        """Fetch a vehicle by ID."""
        result = await self._session.execute(select(VehicleTable).where(VehicleTable.vehicle_id == vehicle_id))
        return result.scalar_one_or_none()

    async def get_many(self, vehicle_ids: Iterable[str]) -> dict[str, VehicleTable]:
        """Fetch the vehicles among *vehicle_ids* that exist, keyed by ID."""
        ids = [vid for vid in vehicle_ids if isinstance(vid, str) and vid]
        if not ids:
            return {}
        result = await self._session.execute(select(VehicleTable).where(VehicleTable.vehicle_id.in_(ids)))
        return {row.vehicle_id: row for row in result.scalars().all()}

    async def list_all(self) -> list[VehicleTable]:
        """List vehicles, newest first."""
        result = await self._session.execute(select(VehicleTable).order_by(VehicleTable.created_at.desc()))
        return list(result.scalars().all())

    async def update(self, vehicle_id: str, **values: Any) -> VehicleTable | None:
        """Apply *values* to a vehicle.  Returns ``None`` if missing.

        Raises
        ------
        ValueError
            If the new vehicle number belongs to another vehicle.
        """
        row = await self.get(vehicle_id)
        if row is None:
            return None
        try:
            async with self._session.begin_nested():
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = datetime.now(UTC)
                await self._session.flush()
        except IntegrityError:
            raise ValueError(f"Vehicle number '{values.get('vehicle_number')}' already exists") from None
        return row

    async def status_summary(self) -> tuple[dict[str, int], float]:
        """Return vehicle counts keyed by status and the fleet's total capacity."""
        result = await self._session.execute(
            select(VehicleTable.status, func.count(), func.sum(VehicleTable.capacity)).group_by(VehicleTable.status)
        )
        counts: dict[str, int] = {}
        capacity = 0.0
        for status, count, status_capacity in result.all():
            counts[status] = int(count)
            capacity += float(status_capacity or 0.0)
        return counts, capacity

    async def delete(self, vehicle_id: str) -> bool:
        """Delete a vehicle.  Returns ``True`` if a row was removed."""
        result = await self._session.execute(delete(VehicleTable).where(VehicleTable.vehicle_id == vehicle_id))
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]


class TransporterRepository:
    """CRUD operations for the ``transporters`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        transporter_id: str,
        company_name: str,
        contact_person: str,
        email: str,
        **fields: Any,
    ) -> TransporterTable:
        """Insert a transporter.

        Raises
        ------
        ValueError
            If another transporter already uses *email*.
        """
        row = TransporterTable(
            transporter_id=transporter_id,
            company_name=company_name,
            contact_person=contact_person,
            email=email,
            **fields,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            raise ValueError(f"Transporter with email '{email}' already exists") from None
        return row

    async def get(self, transporter_id: str) -> TransporterTable | None:
        """Fetch a transporter by ID."""
        result = await self._session.execute(
            select(TransporterTable).where(TransporterTable.transporter_id == transporter_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[TransporterTable]:
        """List transporters, newest first."""
        result = await self._session.execute(select(TransporterTable).order_by(TransporterTable.created_at.desc()))
        return list(result.scalars().all())

    async def update(self, transporter_id: str, **values: Any) -> TransporterTable | None:
        """Apply *values* to a transporter.  Returns ``None`` if missing.

        Raises
        ------
        ValueError
            If the new email belongs to another transporter.
        """
        row = await self.get(transporter_id)
        if row is None:
            return None
        try:
            async with self._session.begin_nested():
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = datetime.now(UTC)
                await self._session.flush()
        except IntegrityError:
            raise ValueError(f"Transporter with email '{values.get('email')}' already exists") from None
        return row

    async def count_by_status(self) -> dict[str, int]:
        result = await self._session.execute(
            select(TransporterTable.status, func.count()).group_by(TransporterTable.status)
        )
        return {status: int(count) for status, count in result.all()}

    async def delete(self, transporter_id: str) -> bool:
        """Delete a transporter.  Returns ``True`` if a row was removed."""
        result = await self._session.execute(
            delete(TransporterTable).where(TransporterTable.transporter_id == transporter_id)
        )
        await self._session.flush()
        return (result.rowcount or 0) > 0  # type: ignore[attr-defined]
