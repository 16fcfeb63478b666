"""Middleware components for the cargo ledger API."""

from __future__ import annotations

from cargo_api.middleware.json_formatter import JSONFormatter
from cargo_api.middleware.logging import RequestLoggingMiddleware
from cargo_api.middleware.prometheus import PrometheusMiddleware

__all__ = [
    "JSONFormatter",
    "PrometheusMiddleware",
    "RequestLoggingMiddleware",
]
