"""HTTP route handlers with Litestar.

This package provides controller modules for different API endpoints:
- health: Health check endpoints
- deployments: Credential deployment and account key endpoints
"""

from litestar import Router

from .deployments import DeploymentController
from .health import HealthController


def get_routers() -> list[Router]:
    """Get all routers for the application."""
    return [
        Router(path="/", route_handlers=[HealthController]),
        Router(path="/", route_handlers=[DeploymentController]),
    ]


__all__ = [
    "DeploymentController",
    "HealthController",
    "get_routers",
]
