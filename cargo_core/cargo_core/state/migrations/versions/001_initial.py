"""Initial schema for the cargo ledger.

Creates the invoice, sequence counter, contract, customer, vehicle and
transporter tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-01 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_json = JSONB().with_variant(sa.JSON(), "sqlite")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------
    op.create_table(
        "invoices",
        sa.Column("invoice_id", sa.String(64), primary_key=True),
        sa.Column("business_mode", sa.String(16), nullable=True),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("customer_id", sa.String(64), nullable=True),
        sa.Column("vehicle_id", sa.String(64), nullable=True),
        sa.Column("transporter_id", sa.String(64), nullable=True),
        sa.Column("contract_id", sa.String(64), nullable=True),
        sa.Column("document", _json, nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending','paid','overdue','cancelled')",
            name="ck_invoices_status",
        ),
    )
    op.create_index("ix_invoices_mode_created", "invoices", ["business_mode", "created_at"])
    op.create_index("ix_invoices_mode_sequence", "invoices", ["business_mode", "sequence"])
    op.create_index("ix_invoices_contract", "invoices", ["contract_id"])
    op.create_index("ix_invoices_created", "invoices", ["created_at"])

    # ------------------------------------------------------------------
    # sequence_counters
    # ------------------------------------------------------------------
    op.create_table(
        "sequence_counters",
        sa.Column("partition_key", sa.String(64), primary_key=True),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("seq >= 0", name="ck_sequence_counters_seq"),
    )

    # ------------------------------------------------------------------
    # contracts
    # ------------------------------------------------------------------
    op.create_table(
        "contracts",
        sa.Column("contract_id", sa.String(64), primary_key=True),
        sa.Column("transporter_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("origin", sa.String(256), nullable=False),
        sa.Column("destination", sa.String(256), nullable=False),
        sa.Column("distance", sa.Float(), nullable=False, server_default="0"),
        sa.Column("agreed_rate", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column("terms", sa.Text(), nullable=False, server_default=""),
        sa.Column("invoice_ids", _json, nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('active','completed','cancelled')",
            name="ck_contracts_status",
        ),
    )
    op.create_index("ix_contracts_transporter_created", "contracts", ["transporter_id", "created_at"])

    # ------------------------------------------------------------------
    # customers / vehicles / transporters
    # ------------------------------------------------------------------
    op.create_table(
        "customers",
        sa.Column("customer_id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("trn", sa.String(64), nullable=False, server_default=""),
        sa.Column("email", sa.String(256), nullable=False, server_default=""),
        sa.Column("phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("address", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_customers_created", "customers", ["created_at"])

    op.create_table(
        "vehicles",
        sa.Column("vehicle_id", sa.String(64), primary_key=True),
        sa.Column("vehicle_name", sa.String(256), nullable=False, server_default=""),
        sa.Column("vehicle_number", sa.String(64), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("capacity", sa.Float(), nullable=False),
        sa.Column("driver_name", sa.String(256), nullable=False, server_default=""),
        sa.Column("driver_phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("status", sa.String(32), nullable=False, server_default="available"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_vehicles_number", "vehicles", ["vehicle_number"], unique=True)

    op.create_table(
        "transporters",
        sa.Column("transporter_id", sa.String(64), primary_key=True),
        sa.Column("company_name", sa.String(256), nullable=False),
        sa.Column("contact_person", sa.String(256), nullable=False),
        sa.Column("email", sa.String(256), nullable=False),
        sa.Column("phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("address", sa.Text(), nullable=False, server_default=""),
        sa.Column("license_number", sa.String(128), nullable=False, server_default=""),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("vehicles", _json, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_transporters_email", "transporters", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_transporters_email")
    op.drop_table("transporters")
    op.drop_index("ix_vehicles_number")
    op.drop_table("vehicles")
    op.drop_index("ix_customers_created")
    op.drop_table("customers")
    op.drop_index("ix_contracts_transporter_created")
    op.drop_table("contracts")
    op.drop_table("sequence_counters")
    op.drop_index("ix_invoices_created")
    op.drop_index("ix_invoices_contract")
    op.drop_index("ix_invoices_mode_sequence")
    op.drop_index("ix_invoices_mode_created")
    op.drop_table("invoices")
