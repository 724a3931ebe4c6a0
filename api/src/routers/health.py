"""Health check and status endpoints."""

from fastapi import APIRouter

from src import __version__
from src.auth import ServicesDep
from src.models import HealthCheck

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check",
    description="Check the health of the API and its dependencies.",
)
async def health_check(services: ServicesDep) -> HealthCheck:
    """Check health of the subscription store and Stripe configuration."""
    settings = services.settings

    redis_status = "healthy" if await services.store.ping() else "unhealthy"
    stripe_status = "configured" if settings.stripe_configured else "not_configured"

    overall_status = "healthy"
    if redis_status == "unhealthy" or not settings.stripe_configured:
        overall_status = "degraded"

    return HealthCheck(
        status=overall_status,
        version=__version__,
        environment=settings.environment.value,
        redis=redis_status,
        stripe=stripe_status,
    )


@router.get(
    "/",
    summary="API information",
    description="Get basic API information.",
)
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "ClientFlow Billing API",
        "version": __version__,
        "description": "Subscription billing and access gate for ClientFlow",
        "documentation": "/docs",
        "health": "/health",
    }
