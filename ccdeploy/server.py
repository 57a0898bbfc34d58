"""Litestar server setup with Granian ASGI server."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from granian import Granian
from granian.constants import Interfaces
from litestar import Litestar
from litestar.datastructures import State
from litestar.di import Provide

from .config import Config, store_config_in_env
from .handlers import get_routers
from .metrics import MetricsServer
from .service import DeploymentService

logger = logging.getLogger(__name__)


# Dependency providers for Litestar DI


def provide_service(state: State) -> DeploymentService:
    """Provide DeploymentService from application state."""
    result: DeploymentService = state["service"]
    return result


def create_app(
    config: Config | None = None,
    service: DeploymentService | None = None,
) -> Litestar:
    """Create and configure the Litestar application."""
    if service is None:
        service = DeploymentService(config or Config())

    @asynccontextmanager
    async def lifespan(_app: Litestar) -> AsyncGenerator[None, None]:
        """Lifespan context manager for startup/shutdown."""
        logger.info(f"Starting ccdeploy server for {service.config.network.value}")
        yield
        logger.info("Stopping ccdeploy server")

    return Litestar(
        route_handlers=get_routers(),
        lifespan=[lifespan],
        debug=False,
        state=State({"service": service}),
        dependencies={
            "service": Provide(provide_service, sync_to_thread=False),
        },
    )


async def run_server(config: Config) -> None:
    """Run the Litestar server with Granian."""
    logger.info(f"Starting ccdeploy on {config.host}:{config.port}")

    # Workers read their configuration from the environment
    store_config_in_env(config)

    server = Granian(
        target="ccdeploy.asgi:app",
        address=config.host,
        port=config.port,
        interface=Interfaces.ASGI,
        workers=1,
        log_level=config.log_level.lower(),
    )

    metrics_server = MetricsServer(host=config.metrics_host, port=config.metrics_port)
    metrics_server.start()

    try:
        server.serve()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        metrics_server.stop()
