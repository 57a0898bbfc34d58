"""ASGI entry point for Granian.

Configuration is loaded from CCDEPLOY_* environment variables set by the
main process.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from litestar import Litestar
from litestar.types import LifeSpanScope, Scope

from .config import get_config_from_env
from .server import create_app

logger = logging.getLogger(__name__)

# Global app instance (created once per worker)
_app_instance: Litestar | None = None


def get_app() -> Litestar:
    """Get or create the Litestar app instance."""
    global _app_instance
    if _app_instance is None:
        config = get_config_from_env()

        logging.basicConfig(
            level=getattr(logging, config.normalized_log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        _app_instance = create_app(config)

    return _app_instance


# ASGI application callable
# Granian calls this with (scope, receive, send)
async def app(
    scope: Scope | LifeSpanScope,
    receive: Callable[..., Any],
    send: Callable[..., Any],
) -> None:
    """ASGI application entry point."""
    litestar_app = get_app()
    await litestar_app(scope, receive, send)
