"""Tests for Prometheus metrics functionality."""

import socket
import time
from collections.abc import AsyncGenerator

import httpx
import pytest
from litestar import Litestar
from litestar.testing import AsyncTestClient

from ccdeploy import metrics
from ccdeploy.metrics import MetricsController, MetricsServer


@pytest.fixture
async def metrics_client() -> AsyncGenerator[AsyncTestClient, None]:
    """Create a test client for metrics endpoints (via MetricsController)."""
    app = Litestar(route_handlers=[MetricsController], debug=False)
    async with AsyncTestClient(app) as client:
        yield client


@pytest.mark.asyncio
async def test_metrics_endpoint_returns_prometheus_format(
    metrics_client: AsyncTestClient,
) -> None:
    """Test that /metrics endpoint returns Prometheus format."""
    resp = await metrics_client.get("/metrics")
    assert resp.status_code == 200
    assert "text/plain" in resp.headers.get("content-type", "")

    text = resp.text
    assert "ccdeploy_build_info" in text
    assert "deployment_requests_total" in text
    assert "deployment_duration_seconds" in text
    assert "deployment_errors_total" in text
    assert "finalization_polls_total" in text
    assert "key_derivations_total" in text


def test_metrics_content_type() -> None:
    assert metrics.get_metrics_content_type().startswith("text/plain")


def test_key_derivation_counted(seed_phrase: str) -> None:
    from ccdeploy.config import Network
    from ccdeploy.keys import generate_account_key_pair

    labels = {"network": "mainnet"}
    before = metrics.REGISTRY.get_sample_value("key_derivations_total", labels) or 0.0
    generate_account_key_pair(seed_phrase, Network.MAINNET)
    assert metrics.REGISTRY.get_sample_value("key_derivations_total", labels) == before + 1


class TestMetricsServer:
    """Tests for the standalone MetricsServer using start_http_server."""

    def test_metrics_server_lifecycle(self) -> None:
        """Test MetricsServer start/stop lifecycle."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]

        server = MetricsServer(host="127.0.0.1", port=port)
        server.start()
        try:
            # Wait for the background thread to bind
            response = None
            for _ in range(50):
                try:
                    response = httpx.get(f"http://127.0.0.1:{port}/metrics", timeout=5)
                    break
                except httpx.ConnectError:
                    time.sleep(0.1)
            assert response is not None
            assert response.status_code == 200
            assert "ccdeploy_build_info" in response.text
        finally:
            server.stop()
