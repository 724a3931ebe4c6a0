"""Routers package."""

from src.routers.billing import router as billing_router
from src.routers.health import router as health_router

__all__ = ["billing_router", "health_router"]
