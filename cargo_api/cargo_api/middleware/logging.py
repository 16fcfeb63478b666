"""Access log with a correlation id per request.

The id comes from the caller's ``X-Correlation-ID`` header when present,
otherwise a fresh hex uuid.  Routers read it off ``request.state`` and
pass it to the event bus, so the access line and the audit lines of one
invoice write can be joined.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("cargo_api.access")

CORRELATION_HEADER = "X-Correlation-ID"

_REDACTED_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


def _headers_for_log(request: Request) -> dict[str, str]:
    return {name: "***" if name.lower() in _REDACTED_HEADERS else value for name, value in request.headers.items()}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``request completed`` record per request, including failed ones."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            entry = {
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query or None,
                "status_code": status,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                "client": request.client.host if request.client else None,
                "correlation_id": correlation_id,
                "headers": _headers_for_log(request),
            }
            logger.log(_level_for(status), "request completed", extra={"request": entry})
