"""Cargo ledger core: billing rules and the state store."""

__version__ = "0.4.0"
