"""Tests for cargo_api/middleware/prometheus.py and the health endpoints.

Covers:
- Path normalisation (UUIDs, hex document ids, numeric segments)
- Request counters recorded per normalised path
- Skipped paths
- GET /metrics, GET /api/v1/health and GET /ready
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from conftest import b2b_body
from httpx import ASGITransport, AsyncClient
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cargo_api.dependencies import get_db_session
from cargo_api.middleware.prometheus import _SKIP_PATHS, _normalise_path

# ---------------------------------------------------------------------------
# Path normalisation
# ---------------------------------------------------------------------------


class TestPathNormalisation:
    def test_uuid_collapsed(self) -> None:
        path = "/api/v1/invoices/550e8400-e29b-41d4-a716-446655440000"
        assert _normalise_path(path) == "/api/v1/invoices/{id}"

    def test_hex_document_id_collapsed(self) -> None:
        path = "/api/v1/invoices/9f86d081884c4d659a2feaa0c55ad015"
        assert _normalise_path(path) == "/api/v1/invoices/{id}"

    def test_nested_ids_collapsed(self) -> None:
        path = "/api/v1/transporters/9f86d081884c4d65/contracts/42"
        assert _normalise_path(path) == "/api/v1/transporters/{id}/contracts/{id}"

    def test_static_routes_unchanged(self) -> None:
        assert _normalise_path("/api/v1/invoices/stats/summary") == "/api/v1/invoices/stats/summary"
        assert _normalise_path("/api/v1/invoices/resequence") == "/api/v1/invoices/resequence"

    def test_short_hex_kept(self) -> None:
        assert _normalise_path("/api/v1/vehicles/abc123") == "/api/v1/vehicles/abc123"

    def test_root_unchanged(self) -> None:
        assert _normalise_path("/") == "/"


class TestSkipPaths:
    @pytest.mark.parametrize("path", ["/metrics", "/docs", "/redoc", "/openapi.json", "/favicon.ico"])
    def test_skipped(self, path: str) -> None:
        assert path in _SKIP_PATHS

    def test_api_paths_recorded(self) -> None:
        assert "/api/v1/invoices" not in _SKIP_PATHS


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


class TestRequestCounters:
    @pytest.mark.asyncio
    async def test_counter_uses_normalised_path(self, client: AsyncClient) -> None:
        created = (await client.post("/api/v1/invoices", json=b2b_body())).json()
        labels = {"method": "GET", "path": "/api/v1/invoices/{id}", "status_code": "200"}
        before = REGISTRY.get_sample_value("cargo_http_requests_total", labels) or 0.0

        await client.get(f"/api/v1/invoices/{created['id']}")

        assert REGISTRY.get_sample_value("cargo_http_requests_total", labels) == before + 1

    @pytest.mark.asyncio
    async def test_allocations_counted(self, client: AsyncClient) -> None:
        labels = {"business_mode": "b2b", "path": "counter"}
        before = REGISTRY.get_sample_value("cargo_invoice_numbers_allocated_total", labels) or 0.0
        await client.post("/api/v1/invoices", json=b2b_body())
        assert REGISTRY.get_sample_value("cargo_invoice_numbers_allocated_total", labels) == before + 1


class TestHealthEndpoints:
    @pytest.mark.asyncio
    async def test_metrics_exposition(self, client: AsyncClient) -> None:
        await client.get("/api/v1/health")
        resp = await client.get("/metrics")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "cargo_http_requests_total" in resp.text

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["db"] == "ok"

    @pytest.mark.asyncio
    async def test_ready(self, client: AsyncClient) -> None:
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ready"

    @pytest.mark.asyncio
    async def test_not_ready_when_store_fails(self, app) -> None:
        broken = AsyncMock(spec=AsyncSession)
        broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        async def _broken_session() -> AsyncGenerator[AsyncSession, None]:
            yield broken

        app.dependency_overrides[get_db_session] = _broken_session
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            ready = await ac.get("/ready")
            health = await ac.get("/api/v1/health")

        assert ready.status_code == 503
        assert ready.json()["checks"]["db"] == "unavailable"
        assert health.status_code == 200
        assert health.json()["db"] == "degraded"
