"""State persistence layer using PostgreSQL or SQLite."""

from cargo_core.state.database import get_engine, get_session
from cargo_core.state.repository import (
    ContractRepository,
    CustomerRepository,
    InvoiceRepository,
    SequenceCounterRepository,
    TransporterRepository,
    VehicleRepository,
)

__all__ = [
    "ContractRepository",
    "CustomerRepository",
    "InvoiceRepository",
    "SequenceCounterRepository",
    "TransporterRepository",
    "VehicleRepository",
    "get_engine",
    "get_session",
]
