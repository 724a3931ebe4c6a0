import asyncio
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from src.auth import PaidUser, require_paid_access
from src.models import SubscriptionPayload
from src.services.billing import with_query_flag


def run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def test_checkout_creates_customer_and_links_user(client, auth_headers, provider, services):
    resp = client.post(
        "/api/v1/billing/checkout-session",
        json={"priceId": "price_pro"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"url": "https://checkout.stripe.test/cus_user_1"}

    call = provider.checkout_calls[0]
    assert call["price_id"] == "price_pro"
    assert call["user_id"] == "user_1"
    assert call["success_url"] == "https://app.example.com/billing?success=true"
    assert call["cancel_url"] == "https://app.example.com/billing?canceled=true"
    assert provider.customers["user_1"].email == "owner@example.com"

    record = run(services.store.get("user_1"))
    assert record.provider_customer_id == "cus_user_1"
    assert record.status == "inactive"


def test_checkout_reuses_customer_and_keeps_active_status(client, auth_headers, provider, services):
    provider.add_customer("user_1", "cus_existing")
    run(services.engine.apply_by_user_id("user_1", "cus_existing", SubscriptionPayload(
        provider_subscription_id="sub_1", status="active",
    )))

    resp = client.post(
        "/api/v1/billing/checkout-session",
        json={"price_id": "price_pro", "successUrl": "https://app.example.com/done"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert provider.checkout_calls[0]["customer_id"] == "cus_existing"
    assert provider.checkout_calls[0]["success_url"] == "https://app.example.com/done"
    assert run(services.store.get("user_1")).status == "active"


def test_second_checkout_reuses_stored_customer_when_search_lags(client, auth_headers, provider, services):
    body = {"priceId": "price_pro"}
    assert client.post("/api/v1/billing/checkout-session", json=body, headers=auth_headers).status_code == 200

    # Stripe customer search has not indexed the new customer yet
    provider.customers.clear()

    resp = client.post("/api/v1/billing/checkout-session", json=body, headers=auth_headers)
    assert resp.status_code == 200
    assert provider.checkout_calls[1]["customer_id"] == "cus_user_1"
    assert provider.customers == {}
    assert run(services.store.get("user_1")).provider_customer_id == "cus_user_1"


def test_checkout_defaults_to_configured_price(client, auth_headers, provider):
    resp = client.post("/api/v1/billing/checkout-session", headers=auth_headers)
    assert resp.status_code == 200
    assert provider.checkout_calls[0]["price_id"] == "price_monthly"


def test_checkout_without_price_is_400(settings, fake_redis, provider, auth_headers):
    from src.main import create_app

    settings.stripe_price_id = None
    client = TestClient(create_app(settings, redis=fake_redis, provider=provider))

    resp = client.post("/api/v1/billing/checkout-session", json={}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing priceId"}
    assert provider.checkout_calls == []


def test_checkout_requires_auth(client):
    resp = client.post("/api/v1/billing/checkout-session", json={"priceId": "price_pro"})
    assert resp.status_code == 401


def test_portal_without_customer_is_404(client, auth_headers):
    resp = client.post("/api/v1/billing/portal-session", json={}, headers=auth_headers)
    assert resp.status_code == 404


def test_portal_appends_return_flag(client, auth_headers, provider):
    provider.add_customer("user_1", "cus_1")

    resp = client.post(
        "/api/v1/billing/portal-session",
        json={"returnUrl": "https://app.example.com/billing?tab=plan"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["url"] == "https://billing.stripe.test/cus_1"
    assert provider.portal_calls[0]["return_url"] == "https://app.example.com/billing?tab=plan&portal=return"


def test_portal_uses_stored_customer(client, auth_headers, provider, services):
    run(services.engine.link_customer("user_1", "cus_stored"))

    resp = client.post("/api/v1/billing/portal-session", headers=auth_headers)
    assert resp.status_code == 200
    assert provider.portal_calls[0]["customer_id"] == "cus_stored"


def test_portal_default_return_url(client, auth_headers, provider):
    provider.add_customer("user_1", "cus_1")
    assert client.post("/api/v1/billing/portal-session", headers=auth_headers).status_code == 200
    assert provider.portal_calls[0]["return_url"] == "https://app.example.com/billing?portal=return"


def test_with_query_flag():
    assert with_query_flag("https://x.test/billing", "portal=return") == "https://x.test/billing?portal=return"
    assert with_query_flag("https://x.test/b?a=1", "portal=return") == "https://x.test/b?a=1&portal=return"


def test_subscription_snapshot(client, auth_headers, services):
    resp = client.get("/api/v1/billing/subscription", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["can_access"] is False
    assert resp.json()["status"] == "inactive"

    run(services.engine.apply_by_user_id("user_1", "cus_1", SubscriptionPayload(
        provider_subscription_id="sub_1",
        status="active",
        current_period_end=datetime.now(UTC) + timedelta(days=10),
    )))
    body = client.get("/api/v1/billing/subscription", headers=auth_headers).json()
    assert body["status"] == "active"
    assert body["can_access"] is True


def test_require_paid_access_guards_routes(app, auth_headers, services):
    router = APIRouter()

    @router.post("/api/v1/clients", dependencies=[Depends(require_paid_access)])
    async def create_client():
        return {"ok": True}

    @router.get("/api/v1/whoami")
    async def whoami(user: PaidUser):
        return {"sub": user.sub}

    app.include_router(router)
    client = TestClient(app)

    assert client.post("/api/v1/clients", headers=auth_headers).status_code == 402

    # Expired period denies even though the status still says active
    run(services.engine.apply_by_user_id("user_1", "cus_1", SubscriptionPayload(
        provider_subscription_id="sub_1",
        status="active",
        current_period_end=datetime.now(UTC) - timedelta(days=1),
    )))
    assert client.post("/api/v1/clients", headers=auth_headers).status_code == 402

    run(services.engine.apply_by_user_id("user_1", "cus_1", SubscriptionPayload(
        provider_subscription_id="sub_1", status="active",
    )))
    assert client.post("/api/v1/clients", headers=auth_headers).status_code == 200
    assert client.get("/api/v1/whoami", headers=auth_headers).json() == {"sub": "user_1"}
