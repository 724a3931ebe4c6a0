"""Stripe webhook ingress.

Verifies the signature over the raw request body, turns the event into one of
the typed ``ProviderEvent`` variants and routes it to the reconciliation
engine. Signature failures are answered with 400 and the event is dropped;
processing failures are answered with 500 so Stripe retries. Every handled
event ends in an idempotent upsert, so redelivery is harmless.
"""

import json
from dataclasses import dataclass, field
from typing import Any

import stripe

from src.config import Settings
from src.exceptions import ConfigurationError, VerificationError
from src.models import (
    USER_ID_METADATA_KEY,
    ProviderEvent,
    ProviderSubscription,
    SubscriptionChanged,
    SubscriptionDeleted,
    SubscriptionReference,
    UnhandledEvent,
)
from src.services.provider import PaymentProvider
from src.services.reconciliation import ReconciliationEngine, canceled_payload, normalize
from src.utils.logging import get_logger

logger = get_logger(__name__)

SUBSCRIPTION_CHANGED_EVENTS = frozenset(
    {"customer.subscription.created", "customer.subscription.updated"}
)
SUBSCRIPTION_DELETED_EVENTS = frozenset({"customer.subscription.deleted"})
SUBSCRIPTION_REFERENCE_EVENTS = frozenset(
    {"checkout.session.completed", "invoice.paid", "invoice.payment_succeeded"}
)

ACKNOWLEDGED = {"received": True}


@dataclass
class WebhookResult:
    """HTTP outcome of a webhook delivery."""

    status_code: int
    body: dict[str, Any] | str = field(default_factory=lambda: dict(ACKNOWLEDGED))


def _object_id(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("id")
    return str(value) if value else None


def _subscription_reference(obj: dict[str, Any]) -> str | None:
    subscription_id = _object_id(obj.get("subscription"))
    if subscription_id:
        return subscription_id
    # Invoices on newer API versions nest the reference under parent
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def parse_event(payload: dict[str, Any]) -> ProviderEvent:
    """Build the typed event for a decoded Stripe event envelope."""
    event_type = str(payload.get("type") or "")
    event_id = payload.get("id")

    if (
        event_type not in SUBSCRIPTION_CHANGED_EVENTS
        and event_type not in SUBSCRIPTION_DELETED_EVENTS
        and event_type not in SUBSCRIPTION_REFERENCE_EVENTS
    ):
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        logger.warning("webhook.malformed_event", event_id=event_id, event_type=event_type)
        return UnhandledEvent(event_id=event_id, event_type=event_type)

    if event_type in SUBSCRIPTION_CHANGED_EVENTS:
        return SubscriptionChanged(
            event_id=event_id,
            event_type=event_type,
            subscription=ProviderSubscription.model_validate(obj),
        )

    if event_type in SUBSCRIPTION_DELETED_EVENTS:
        return SubscriptionDeleted(
            event_id=event_id,
            event_type=event_type,
            subscription=ProviderSubscription.model_validate(obj),
        )

    metadata = obj.get("metadata") or {}
    user_id = metadata.get(USER_ID_METADATA_KEY)
    return SubscriptionReference(
        event_id=event_id,
        event_type=event_type,
        subscription_id=_subscription_reference(obj),
        customer_id=_object_id(obj.get("customer")),
        user_id=str(user_id) if user_id else None,
    )


class WebhookIngress:
    """Authenticates and dispatches Stripe webhook deliveries."""

    def __init__(
        self,
        settings: Settings,
        engine: ReconciliationEngine,
        provider: PaymentProvider,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._provider = provider

    def verify(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        """Check the signature over the exact bytes received and decode them.

        Raises:
            VerificationError: missing or invalid signature, or a body that
                is not a JSON event.
            ConfigurationError: no webhook signing secret is configured.
        """
        if not signature:
            raise VerificationError("Missing stripe-signature header")

        secret = self._settings.stripe_webhook_secret
        if secret is None:
            raise ConfigurationError("Missing Stripe webhook config")

        try:
            payload = raw_body.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                payload,
                signature,
                secret.get_secret_value(),
                tolerance=self._settings.stripe_webhook_tolerance,
            )
        except UnicodeDecodeError as e:
            raise VerificationError("Webhook Error: Invalid payload encoding") from e
        except stripe.SignatureVerificationError as e:
            raise VerificationError(f"Webhook Error: {e.user_message or e}") from e

        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise VerificationError("Webhook Error: Invalid payload") from e

        if not isinstance(event, dict):
            raise VerificationError("Webhook Error: Invalid payload")
        return event

    async def handle(self, raw_body: bytes, signature: str | None) -> WebhookResult:
        """Process one webhook delivery and return the response to send."""
        try:
            payload = self.verify(raw_body, signature)
        except VerificationError as e:
            logger.warning("webhook.rejected", reason=e.message)
            return WebhookResult(400, e.message)
        except ConfigurationError as e:
            logger.error("webhook.not_configured")
            return WebhookResult(500, e.message)

        log = logger.bind(event_id=payload.get("id"), event_type=payload.get("type"))
        log.info("webhook.received")

        try:
            event = parse_event(payload)
            await self.dispatch(event)
        except Exception as e:
            log.error("webhook.update_failed", error=str(e), exc_info=e)
            return WebhookResult(500, "Webhook update failed")

        return WebhookResult(200)

    async def dispatch(self, event: ProviderEvent) -> bool:
        """Route a typed event to the engine; returns whether a row was written."""
        if isinstance(event, SubscriptionChanged):
            sub = event.subscription
            return await self._engine.apply(sub.customer, normalize(sub), sub.user_id)

        if isinstance(event, SubscriptionDeleted):
            sub = event.subscription
            return await self._engine.apply(
                sub.customer, canceled_payload(sub.id), sub.user_id
            )

        if isinstance(event, SubscriptionReference):
            if not event.subscription_id:
                # One-off payments and invoices without a subscription
                logger.info("webhook.no_subscription", event_type=event.event_type)
                return False

            sub = await self._provider.get_subscription(event.subscription_id)
            customer_id = sub.customer or event.customer_id
            return await self._engine.apply(
                customer_id, normalize(sub), sub.user_id or event.user_id
            )

        logger.debug("webhook.ignored", event_type=event.event_type)
        return False
