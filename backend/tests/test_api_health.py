"""Integration tests for /, /health and /metrics."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient


class TestLivenessEndpoint:
    @pytest.mark.asyncio
    async def test_liveness_returns_healthy(self, client: AsyncClient):
        """GET /health returns 200 with status healthy."""
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["browser"]["active_pages"] == 0

    @pytest.mark.asyncio
    async def test_root(self, client: AsyncClient):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["app"] == "PlaceLink"


class TestMetricsEndpoint:
    @pytest.mark.asyncio
    async def test_metrics_exposed(self, client: AsyncClient):
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert "placelink_resolve_requests_total" in resp.text

    @pytest.mark.asyncio
    async def test_metrics_disabled(self, client: AsyncClient):
        with patch("placelink.api.v1.health.settings.METRICS_ENABLED", False):
            resp = await client.get("/metrics")
        assert resp.status_code == 404
