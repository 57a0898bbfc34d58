"""Prometheus metrics for ccdeploy with standalone HTTP server.

This module defines and exposes all Prometheus metrics used by ccdeploy.
Metrics are served on a separate port using prometheus_client's built-in HTTP server.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from litestar import Controller, get
from litestar.response import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    start_http_server,
)

if TYPE_CHECKING:
    from http.server import ThreadingHTTPServer
    from wsgiref.simple_server import WSGIServer

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

# Application info
APP_INFO = Info(
    "ccdeploy_build_info",
    "Build information about ccdeploy",
    registry=REGISTRY,
)
APP_INFO.info({"version": "0.1.0", "name": "ccdeploy"})

# Deployment metrics
DEPLOYMENT_REQUESTS_TOTAL = Counter(
    "deployment_requests_total",
    "Total number of credential deployment attempts",
    ["network"],
    registry=REGISTRY,
)

DEPLOYMENT_DURATION_SECONDS = Histogram(
    "deployment_duration_seconds",
    "Time from decoding the payload to observing finalization",
    ["network"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0],
    registry=REGISTRY,
)

DEPLOYMENT_ERRORS_TOTAL = Counter(
    "deployment_errors_total",
    "Total number of failed credential deployments",
    ["error_type"],
    registry=REGISTRY,
)

FINALIZATION_POLLS_TOTAL = Counter(
    "finalization_polls_total",
    "Total number of transaction status polls",
    registry=REGISTRY,
)

KEY_DERIVATIONS_TOTAL = Counter(
    "key_derivations_total",
    "Total number of account signing keys derived",
    ["network"],
    registry=REGISTRY,
)


def get_metrics_output() -> bytes:
    """Generate Prometheus-formatted metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


class MetricsController(Controller):  # type: ignore[misc]
    """Prometheus metrics HTTP endpoints.

    In production metrics are served on a separate port by MetricsServer;
    this controller serves the same registry from the API app.
    """

    path = "/"

    @get("/metrics")  # type: ignore[untyped-decorator]
    async def metrics(self) -> Response:
        """Handler for the /metrics endpoint."""
        return Response(
            content=get_metrics_output(),
            headers={"Content-Type": get_metrics_content_type()},
        )


class MetricsServer:
    """Standalone Prometheus metrics HTTP server using prometheus_client.start_http_server."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8081) -> None:
        self._host = host
        self._port = port
        self._httpd: WSGIServer | ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the metrics server in a background thread."""
        self._thread = threading.Thread(
            target=self._run_server,
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"Metrics server started at http://{self._host}:{self._port}/metrics",
        )

    def _run_server(self) -> None:
        """Run the HTTP server (called in background thread)."""
        try:
            # start_http_server returns a tuple of (server, thread)
            server, _ = start_http_server(
                port=self._port,
                addr=self._host,
                registry=REGISTRY,
            )
            self._httpd = server
        except Exception:
            logger.exception("Failed to start metrics server")
            raise

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._httpd is not None:
            try:
                self._httpd.shutdown()
                self._httpd.server_close()
            except Exception:
                logger.exception("Error stopping metrics server")
            finally:
                self._httpd = None

        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

        logger.info("Metrics server stopped")
