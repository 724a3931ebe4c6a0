"""Stripe API client.

Thin async wrapper around the Stripe SDK that returns this service's own
models. It holds no business logic and reads its keys from the injected
settings rather than the global ``stripe.api_key``.
"""

from typing import Any

import stripe

from src.config import Settings
from src.exceptions import ProviderError
from src.models import USER_ID_METADATA_KEY, ProviderCustomer, ProviderSubscription
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _escape_search_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class PaymentProvider:
    """Stripe operations used by checkout, portal, sync and webhooks."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def configured(self) -> bool:
        """Whether a Stripe secret key is available."""
        return self._settings.stripe_secret_key is not None

    def _request_options(self) -> dict[str, Any]:
        if self._settings.stripe_secret_key is None:
            raise ProviderError("Stripe secret key is not configured")
        return {
            "api_key": self._settings.stripe_secret_key.get_secret_value(),
            "stripe_version": self._settings.stripe_api_version,
        }

    # Customer operations

    async def find_customer(self, user_id: str) -> ProviderCustomer | None:
        """Find the customer tagged with this user's id."""
        query = f"metadata['{USER_ID_METADATA_KEY}']:'{_escape_search_value(user_id)}'"
        try:
            result = await stripe.Customer.search_async(
                query=query, limit=1, **self._request_options()
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to search customers: {e}") from e

        if not result.data:
            return None
        return ProviderCustomer.model_validate(result.data[0].to_dict())

    async def create_customer(self, user_id: str, email: str | None = None) -> ProviderCustomer:
        """Create a customer tagged with this user's id."""
        params: dict[str, Any] = {"metadata": {USER_ID_METADATA_KEY: user_id}}
        if email:
            params["email"] = email

        try:
            customer = await stripe.Customer.create_async(**params, **self._request_options())
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to create customer: {e}") from e

        logger.info("provider.customer_created", user_id=user_id, customer_id=customer.id)
        return ProviderCustomer.model_validate(customer.to_dict())

    # Subscription operations

    async def list_subscriptions(self, customer_id: str, limit: int = 10) -> list[ProviderSubscription]:
        """List a customer's subscriptions in every status."""
        try:
            result = await stripe.Subscription.list_async(
                customer=customer_id,
                status="all",
                limit=limit,
                **self._request_options(),
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to list subscriptions: {e}") from e

        return [ProviderSubscription.model_validate(sub.to_dict()) for sub in result.data]

    async def get_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Retrieve a full subscription object."""
        try:
            sub = await stripe.Subscription.retrieve_async(
                subscription_id, **self._request_options()
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to retrieve subscription: {e}") from e

        return ProviderSubscription.model_validate(sub.to_dict())

    # Session operations

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        user_id: str,
    ) -> str:
        """Create a subscription checkout session and return its URL."""
        metadata = {USER_ID_METADATA_KEY: user_id}
        try:
            session = await stripe.checkout.Session.create_async(
                mode="subscription",
                customer=customer_id,
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                subscription_data={"metadata": metadata},
                metadata=metadata,
                **self._request_options(),
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to create checkout session: {e}") from e

        return session.url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create a billing portal session and return its URL."""
        try:
            session = await stripe.billing_portal.Session.create_async(
                customer=customer_id,
                return_url=return_url,
                **self._request_options(),
            )
        except stripe.StripeError as e:
            raise ProviderError(f"Failed to create portal session: {e}") from e

        return session.url
