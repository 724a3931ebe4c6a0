"""Billing endpoints: subscription checkout, portal, sync and webhook receiver.

Endpoints:
- POST /billing/checkout-session : create a Stripe Checkout session URL
- POST /billing/portal-session   : create a Stripe billing portal URL
- POST /billing/sync             : pull the caller's subscription from Stripe
- GET  /billing/subscription     : stored snapshot plus the access gate
- POST /billing/webhook          : Stripe webhook receiver (signature verified)
"""
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from src.auth import CurrentUser, ServicesDep
from src.models import (
    CheckoutSessionRequest,
    ErrorResponse,
    PortalSessionRequest,
    SessionURLResponse,
    SubscriptionSnapshot,
    SubscriptionStatus,
    SyncResponse,
)
from src.services.access import can_access

router = APIRouter(prefix="/billing", tags=["billing"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


@router.post(
    "/checkout-session",
    response_model=SessionURLResponse,
    responses=ERROR_RESPONSES,
    summary="Create a checkout session",
)
async def create_checkout_session(
    current_user: CurrentUser,
    services: ServicesDep,
    payload: CheckoutSessionRequest | None = None,
) -> SessionURLResponse:
    """Create a subscription checkout link for the current user."""
    payload = payload or CheckoutSessionRequest()
    url = await services.billing.create_checkout_session(
        current_user,
        price_id=payload.price_id,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
    )
    return SessionURLResponse(url=url)


@router.post(
    "/portal-session",
    response_model=SessionURLResponse,
    responses=ERROR_RESPONSES,
    summary="Create a billing portal session",
)
async def create_portal_session(
    current_user: CurrentUser,
    services: ServicesDep,
    payload: PortalSessionRequest | None = None,
) -> SessionURLResponse:
    """Return a billing portal URL for the current user."""
    payload = payload or PortalSessionRequest()
    url = await services.billing.create_portal_session(current_user, payload.return_url)
    return SessionURLResponse(url=url)


@router.post(
    "/sync",
    response_model=SyncResponse,
    responses=ERROR_RESPONSES,
    summary="Sync subscription from Stripe",
    description="Pull the caller's current subscription from Stripe and store it.",
)
async def sync_subscription(
    current_user: CurrentUser,
    services: ServicesDep,
) -> SyncResponse:
    """Reconcile the caller's snapshot against Stripe."""
    return await services.sync.sync(current_user.sub)


@router.get(
    "/subscription",
    response_model=SubscriptionSnapshot,
    responses={401: {"model": ErrorResponse}},
    summary="Current subscription snapshot",
)
async def get_subscription(
    current_user: CurrentUser,
    services: ServicesDep,
) -> SubscriptionSnapshot:
    """Return the stored snapshot and whether it grants access right now."""
    record = await services.store.get(current_user.sub)
    if record is None:
        return SubscriptionSnapshot(
            status=SubscriptionStatus.INACTIVE.value,
            can_access=False,
        )

    return SubscriptionSnapshot(
        status=record.status,
        current_period_end=record.current_period_end,
        updated_at=record.updated_at,
        can_access=can_access(record),
    )


@router.post("/webhook", include_in_schema=False)
async def webhook(
    request: Request,
    services: ServicesDep,
    stripe_signature: str | None = Header(None),
) -> Response:
    """Receive Stripe webhook events.

    The body is read as raw bytes; the signature covers the exact payload.
    """
    body = await request.body()
    result = await services.webhooks.handle(body, stripe_signature)

    if isinstance(result.body, dict):
        return JSONResponse(status_code=result.status_code, content=result.body)
    return PlainTextResponse(result.body, status_code=result.status_code)
