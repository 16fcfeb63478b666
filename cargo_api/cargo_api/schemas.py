"""Shared Pydantic response models for API endpoints.

Invoices, contracts and directory records are returned as the stored
documents they are; only the fixed-shape responses are modelled here so
that they are validated and documented in the OpenAPI schema.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Invoice schemas
# ---------------------------------------------------------------------------


class InvoiceStatsResponse(BaseModel):
    """Counts and revenue sums over the invoices matching a mode filter."""

    model_config = ConfigDict(populate_by_name=True)

    total_invoices: int = Field(0, alias="totalInvoices")
    total_revenue: float = Field(0.0, alias="totalRevenue")
    pending_amount: float = Field(0.0, alias="pendingAmount")
    paid_amount: float = Field(0.0, alias="paidAmount")
    pending_invoices: int = Field(0, alias="pendingInvoices")
    paid_invoices: int = Field(0, alias="paidInvoices")


class InvoiceDeleteResponse(BaseModel):
    """Result of deleting an invoice."""

    message: str
    id: str
    resequenced: int = Field(0, description="Invoices left in the partition after compaction.")


class ResequenceResponse(BaseModel):
    """Result of the batch resequencing job."""

    message: str
    partitions: dict[str, int] = Field(default_factory=dict, description="Invoice count per business mode.")


# ---------------------------------------------------------------------------
# Directory schemas
# ---------------------------------------------------------------------------


class DeleteResponse(BaseModel):
    """Acknowledgement for a deleted customer, vehicle or transporter."""

    message: str
    id: str


class VehicleStatsResponse(BaseModel):
    """Fleet counts by status and total capacity."""

    model_config = ConfigDict(populate_by_name=True)

    total_vehicles: int = Field(0, alias="totalVehicles")
    available_vehicles: int = Field(0, alias="availableVehicles")
    in_transit_vehicles: int = Field(0, alias="inTransitVehicles")
    maintenance_vehicles: int = Field(0, alias="maintenanceVehicles")
    total_capacity: float = Field(0.0, alias="totalCapacity")


class TransporterStatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_transporters: int = Field(0, alias="totalTransporters")
    active_transporters: int = Field(0, alias="activeTransporters")
    total_contracts: int = Field(0, alias="totalContracts")


# ---------------------------------------------------------------------------
# Infrastructure schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Liveness payload; ``db`` is ``ok`` or ``degraded``."""

    status: str
    version: str
    db: str
