"""
Unit tests for MetricsServer HTTP endpoints.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
without binding the configured port.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from pod_affinity_webhook.observability.metrics import MetricsServer


@pytest.fixture
def metrics_server():
    """Create a fresh MetricsServer instance per test."""
    return MetricsServer(port=0)


@pytest.fixture
async def client(metrics_server):
    """Create an aiohttp TestClient from the MetricsServer app."""
    server = TestServer(metrics_server.app)
    async with TestClient(server) as cli:
        yield cli


class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    async def test_metrics_returns_200(self, client):
        """Prometheus scrape endpoint returns the webhook's metric families."""
        resp = await client.get("/metrics")
        assert resp.status == 200
        body = await resp.text()
        assert "pod_affinity_webhook_admission_requests_total" in body
        assert "pod_affinity_webhook_reconciliation_total" in body

    async def test_metrics_error_returns_500(self, client):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "pod_affinity_webhook.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await client.get("/metrics")
        assert resp.status == 500
        body = await resp.text()
        assert "RuntimeError" in body


class TestHealthzEndpoint:
    """Tests for ``GET /healthz`` (K8s liveness probe)."""

    async def test_healthz_returns_200_ok(self, client):
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.text() == "ok"


class TestReadyEndpoint:
    """Tests for ``GET /ready``."""

    async def test_ready_without_check(self, client):
        resp = await client.get("/ready")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ready"

    async def test_not_ready_when_check_fails(self):
        metrics_server = MetricsServer(port=0, readiness_check=lambda: False)
        async with TestClient(TestServer(metrics_server.app)) as cli:
            resp = await cli.get("/ready")
            assert resp.status == 503
            assert (await resp.json())["status"] == "not_ready"


class TestLifecycle:
    async def test_stop_without_start_is_harmless(self, metrics_server):
        await metrics_server.stop()
        assert metrics_server.runner is None
