"""SQLAlchemy 2.0 ORM table definitions for the cargo ledger state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by Alembic migrations and the repository layer.

Invoices are stored document-style: the columns hold identity, partition,
numbering, status, links and timestamps (everything that is filtered,
ordered or locked on), and the ``document`` JSON column holds the rest of
the invoice exactly as the API exchanges it.  Older invoices may lack
fields in ``document`` that newer code writes; readers must tolerate that.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Cross-dialect JSON type: uses JSONB on PostgreSQL for GIN indexing and
# query operators, falls back to plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """``DateTime(timezone=True)`` that always hands back UTC-aware values.

    SQLite drops the offset on the way in, so naive values read back are
    reinterpreted as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all cargo ledger tables."""


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


class InvoiceTable(Base):
    """Customer invoices, partitioned by business mode for numbering.

    ``sequence`` is contiguous (1..N) within each ``business_mode``
    partition; deletes and the resequencing job keep it that way.  It is
    nullable for invoices created before sequential numbering existed.
    """

    __tablename__ = "invoices"

    invoice_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    business_mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transporter_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    contract_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','paid','overdue','cancelled')",
            name="ck_invoices_status",
        ),
        Index("ix_invoices_mode_created", "business_mode", "created_at"),
        Index("ix_invoices_mode_sequence", "business_mode", "sequence"),
        Index("ix_invoices_contract", "contract_id"),
        Index("ix_invoices_created", "created_at"),
    )


# ---------------------------------------------------------------------------
# Sequence counters
# ---------------------------------------------------------------------------


class SequenceCounterTable(Base):
    """Highest invoice sequence issued per partition (``invoices_<mode>``)."""

    __tablename__ = "sequence_counters"

    partition_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (CheckConstraint("seq >= 0", name="ck_sequence_counters_seq"),)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class ContractTable(Base):
    """Haulage agreements between the business and a transporter."""

    __tablename__ = "contracts"

    contract_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    transporter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    origin: Mapped[str] = mapped_column(String(256), nullable=False)
    destination: Mapped[str] = mapped_column(String(256), nullable=False)
    distance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    agreed_rate: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    terms: Mapped[str] = mapped_column(Text, nullable=False, default="")
    invoice_ids: Mapped[list[str]] = mapped_column(_JsonType, nullable=False, default=list)
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_contracts_status",
        ),
        Index("ix_contracts_transporter_created", "transporter_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Reference entities
# ---------------------------------------------------------------------------


class CustomerTable(Base):
    """Customers billed through B2C invoices."""

    __tablename__ = "customers"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    trn: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (Index("ix_customers_created", "created_at"),)


class VehicleTable(Base):
    """Fleet vehicles referenced by invoices and transporters."""

    __tablename__ = "vehicles"

    vehicle_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    vehicle_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    vehicle_number: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    capacity: Mapped[float] = mapped_column(Float, nullable=False)
    driver_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    driver_phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="available")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (Index("ix_vehicles_number", "vehicle_number", unique=True),)


class TransporterTable(Base):
    """Haulage companies that carry B2B cargo.

    ``vehicles`` holds either vehicle ids or inline vehicle objects; readers
    resolve ids against the ``vehicles`` table.
    """

    __tablename__ = "transporters"

    transporter_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    company_name: Mapped[str] = mapped_column(String(256), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    license_number: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    vehicles: Mapped[list[Any]] = mapped_column(_JsonType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (Index("ix_transporters_email", "email", unique=True),)
