"""API router modules for the cargo back-office service."""

from __future__ import annotations

from cargo_api.routers import customers, health, invoices, transporters, vehicles

__all__ = [
    "customers",
    "health",
    "invoices",
    "transporters",
    "vehicles",
]
