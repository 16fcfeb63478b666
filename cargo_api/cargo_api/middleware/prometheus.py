"""Prometheus instrumentation.

HTTP traffic is counted per method, route shape and status; the ledger
adds counters for emitted events, allocated invoice numbers (split by
whether the atomic counter or the latest-invoice estimate produced them)
and invoices renumbered after a delete or by the batch job.
"""

from __future__ import annotations

import re
import time

from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

HTTP_REQUESTS_TOTAL = Counter(
    "cargo_http_requests_total",
    "HTTP requests served",
    ["method", "path", "status_code"],
)
HTTP_REQUEST_DURATION = Histogram(
    "cargo_http_request_duration_seconds",
    "Time spent serving HTTP requests",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

EVENTS_TOTAL = Counter("cargo_events_total", "Events published on the event bus", ["event_type"])
INVOICE_NUMBERS_ALLOCATED = Counter(
    "cargo_invoice_numbers_allocated_total",
    "Invoice numbers handed out, by business mode and allocation path (counter or fallback)",
    ["business_mode", "path"],
)
INVOICES_RESEQUENCED = Counter(
    "cargo_invoices_resequenced_total",
    "Invoices whose number was rewritten, by business mode and trigger (delete or batch)",
    ["business_mode", "trigger"],
)

# Route segments that are record ids: uuids, uuid4().hex document ids, integers.
_ID_SEGMENT = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}|[0-9a-f]{12,64}|\d+")

_SKIP_PATHS = frozenset({"/metrics", "/docs", "/redoc", "/openapi.json", "/favicon.ico"})


def _normalise_path(path: str) -> str:
    """Replace id segments with ``{id}`` so label values stay bounded."""
    return "/".join("{id}" if _ID_SEGMENT.fullmatch(segment) else segment for segment in path.split("/"))


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        route = _normalise_path(request.url.path)
        started = time.perf_counter()
        response = await call_next(request)
        HTTP_REQUEST_DURATION.labels(request.method, route).observe(time.perf_counter() - started)
        HTTP_REQUESTS_TOTAL.labels(request.method, route, str(response.status_code)).inc()
        return response
