"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from redis.asyncio import Redis

from src import __version__
from src.config import Settings, get_settings
from src.exceptions import BillingError
from src.routers import billing_router, health_router
from src.services import build_services
from src.services.provider import PaymentProvider
from src.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.services.settings

    if not settings.stripe_configured:
        logger.warning("Stripe keys are not configured; billing endpoints will fail")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment.value,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down...")
    redis = getattr(app.state, "redis", None)
    if redis is not None:
        await redis.aclose()
    logger.info("Shutdown complete")


def create_app(
    settings: Settings | None = None,
    redis: Redis | None = None,
    provider: PaymentProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Every service is built here from a single settings instance; tests pass
    their own Redis client and payment provider.
    """
    settings = settings or get_settings()
    configure_logging(settings, version=__version__)

    app = FastAPI(
        title="ClientFlow Billing API",
        description="""
## Subscription billing for ClientFlow

Keeps a per-user subscription snapshot in agreement with Stripe and exposes
the access gate every paid feature checks.

### Reconciliation

- **Webhooks**: Stripe pushes subscription and checkout events to `/api/v1/billing/webhook`
- **Sync**: the client pulls current state from Stripe via `/api/v1/billing/sync`
  after returning from checkout or the billing portal

### Authentication

User endpoints require a bearer token in the `Authorization` header.
The webhook endpoint is authenticated by its `Stripe-Signature` header.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if redis is None:
        redis = Redis.from_url(str(settings.redis_url), decode_responses=False)
        app.state.redis = redis
    app.state.services = build_services(settings, redis, provider=provider)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Prometheus metrics
    if settings.prometheus_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    # Include routers
    app.include_router(health_router)
    app.include_router(billing_router, prefix="/api/v1")

    @app.exception_handler(BillingError)
    async def billing_exception_handler(
        request: Request, exc: BillingError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Billing request failed",
                error=exc.message,
                error_type=type(exc).__name__,
                path=request.url.path,
            )
        else:
            logger.info(
                "Billing request rejected",
                error=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )

        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.client_message},
            headers=headers,
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.debug:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": str(exc),
                    "type": type(exc).__name__,
                },
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An unexpected error occurred"},
        )

    return app


# Create app instance
app = create_app()
