"""Health check endpoints."""

from litestar import Controller, get

from ccdeploy.service import DeploymentService

from .base import HealthResponse, ProbeResponse


class HealthController(Controller):  # type: ignore[misc]
    """Health check endpoints."""

    path = "/"

    @get("/health")  # type: ignore[untyped-decorator]
    async def health(self, service: DeploymentService) -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", network=service.config.network.value)

    @get("/healthcheck")  # type: ignore[untyped-decorator]
    async def healthcheck(self) -> ProbeResponse:
        """Liveness probe for load balancers."""
        return ProbeResponse(status="UP", outcome="UP")
