"""Billing service for checkout and billing-portal sessions.

Both flows resolve the user's Stripe customer from the stored subscription
row first and only then by metadata search, which lags behind new writes.
Checkout creates the customer on first use and links it to the row, so
webhooks arriving afterwards can find the user by customer id.
"""
from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

from src.config import Settings
from src.exceptions import NotFoundError, ValidationError
from src.models import ProviderCustomer, TokenData
from src.services.provider import PaymentProvider
from src.services.reconciliation import ReconciliationEngine
from src.utils.logging import get_logger

logger = get_logger(__name__)


def with_query_flag(url: str, flag: str) -> str:
    """Append a ``key=value`` flag to a URL's query string."""
    parts = urlsplit(url)
    query = f"{parts.query}&{flag}" if parts.query else flag
    return urlunsplit(parts._replace(query=query))


class BillingService:
    """Creates Stripe checkout and portal sessions for authenticated users."""

    def __init__(
        self,
        settings: Settings,
        engine: ReconciliationEngine,
        provider: PaymentProvider,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._provider = provider

    @property
    def _site_url(self) -> str:
        return self._settings.site_url.rstrip("/")

    async def _resolve_customer(self, user_id: str) -> ProviderCustomer | None:
        record = await self._engine.store.get(user_id)
        if record is not None and record.provider_customer_id:
            return ProviderCustomer(id=record.provider_customer_id)
        return await self._provider.find_customer(user_id)

    async def ensure_customer_for_user(self, user: TokenData) -> ProviderCustomer:
        """Find or create the Stripe customer for a user and link it locally."""
        customer = await self._resolve_customer(user.sub)
        if customer is None:
            customer = await self._provider.create_customer(user.sub, email=user.email)

        await self._engine.link_customer(user.sub, customer.id)
        return customer

    async def create_checkout_session(
        self,
        user: TokenData,
        price_id: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> str:
        """Create a subscription checkout session and return its URL."""
        price_id = price_id or self._settings.stripe_price_id
        if not price_id:
            raise ValidationError("Missing priceId")

        customer = await self.ensure_customer_for_user(user)
        url = await self._provider.create_checkout_session(
            customer_id=customer.id,
            price_id=price_id,
            success_url=success_url or f"{self._site_url}/billing?success=true",
            cancel_url=cancel_url or f"{self._site_url}/billing?canceled=true",
            user_id=user.sub,
        )

        logger.info("billing.checkout_created", user_id=user.sub, customer_id=customer.id)
        return url

    async def create_portal_session(self, user: TokenData, return_url: str | None = None) -> str:
        """Create a billing portal session and return its URL.

        The return URL carries ``portal=return`` so the client knows to sync.
        """
        customer = await self._resolve_customer(user.sub)
        if customer is None:
            raise NotFoundError("No Stripe customer found")

        target = with_query_flag(return_url or f"{self._site_url}/billing", "portal=return")
        url = await self._provider.create_portal_session(customer.id, target)

        logger.info("billing.portal_created", user_id=user.sub, customer_id=customer.id)
        return url
