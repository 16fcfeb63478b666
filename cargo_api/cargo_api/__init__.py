"""HTTP API for the cargo back-office: invoices, contracts and the fleet directory."""

__version__ = "0.4.0"
