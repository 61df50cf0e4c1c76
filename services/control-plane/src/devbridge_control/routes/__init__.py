"""Control plane routes."""

from devbridge_control.routes.connection import router as connection_router
from devbridge_control.routes.health import router as health_router

__all__ = ["connection_router", "health_router"]
