"""API module."""

from app.api.health import router as health_router
from app.api.routes import router as investigation_router

__all__ = ["health_router", "investigation_router"]
