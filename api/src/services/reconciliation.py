"""Subscription reconciliation.

Turns Stripe subscription objects into the normalized payload stored per user
and applies it to the subscription store. Both the webhook handler and the
sync endpoint write through here, so the status folding and the
customer-id bookkeeping live in one place.

Writes are plain upserts with no ordering token. Two reconciliations racing
for the same user resolve to whichever write lands last, and an older event
delivered late can overwrite a newer snapshot.
"""

import math
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from src.models import (
    SubscriptionPayload,
    SubscriptionRecord,
    SubscriptionStatus,
)
from src.services.store import SubscriptionStore
from src.utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_status(raw_status: Any) -> str:
    """Lower-case a provider status and fold trialing into active.

    Unknown statuses pass through unchanged so new provider states are stored
    rather than rejected.
    """
    status = str(raw_status if raw_status is not None else "incomplete").lower()
    if status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value):
        return SubscriptionStatus.ACTIVE.value
    return status


def period_end_to_datetime(value: Any) -> datetime | None:
    """Convert epoch seconds to a UTC datetime; anything non-numeric is None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _first_item_period_end(items: Any) -> Any:
    # Newer API versions report the billing period per subscription item
    if not isinstance(items, Mapping):
        return None
    data = items.get("data") or []
    if not data or not isinstance(data[0], Mapping):
        return None
    return data[0].get("current_period_end")


def normalize(subscription: BaseModel | Mapping[str, Any]) -> SubscriptionPayload:
    """Compute the stored payload for a provider subscription object."""
    if isinstance(subscription, BaseModel):
        data = subscription.model_dump()
    else:
        data = dict(subscription)

    period_end = data.get("current_period_end")
    if period_end is None:
        period_end = _first_item_period_end(data.get("items"))

    subscription_id = data.get("id")
    return SubscriptionPayload(
        provider_subscription_id=str(subscription_id) if subscription_id else None,
        status=normalize_status(data.get("status")),
        current_period_end=period_end_to_datetime(period_end),
    )


def canceled_payload(subscription_id: str | None) -> SubscriptionPayload:
    """Payload for a deleted subscription, whatever status it reported."""
    return SubscriptionPayload(
        provider_subscription_id=subscription_id,
        status=SubscriptionStatus.CANCELED.value,
        current_period_end=None,
    )


INACTIVE_PAYLOAD = SubscriptionPayload(
    provider_subscription_id=None,
    status=SubscriptionStatus.INACTIVE.value,
    current_period_end=None,
)


class ReconciliationEngine:
    """Applies normalized payloads to the subscription store.

    Store failures propagate as ``StoreError``; nothing here retries.
    """

    def __init__(self, store: SubscriptionStore, clock: Clock | None = None) -> None:
        self.store = store
        self._clock = clock or utc_now

    def _record(
        self, user_id: str, customer_id: str | None, payload: SubscriptionPayload
    ) -> SubscriptionRecord:
        return SubscriptionRecord(
            user_id=user_id,
            provider_customer_id=customer_id,
            provider_subscription_id=payload.provider_subscription_id,
            status=payload.status,
            current_period_end=payload.current_period_end,
            updated_at=self._clock(),
        )

    async def apply_by_customer_id(
        self, customer_id: str, payload: SubscriptionPayload
    ) -> bool:
        """Update the row linked to a Stripe customer.

        Returns False when no user is linked to the customer yet.
        """
        user_id = await self.store.find_user_by_customer(customer_id)
        if not user_id:
            return False

        await self.store.upsert(self._record(user_id, customer_id, payload))
        logger.info(
            "reconcile.applied",
            user_id=user_id,
            customer_id=customer_id,
            status=payload.status,
            path="customer",
        )
        return True

    async def apply_by_user_id(
        self, user_id: str, customer_id: str | None, payload: SubscriptionPayload
    ) -> SubscriptionRecord:
        """Upsert the row for a user, writing the customer id alongside."""
        if not customer_id:
            existing = await self.store.get(user_id)
            customer_id = existing.provider_customer_id if existing else None

        record = await self.store.upsert(self._record(user_id, customer_id, payload))
        logger.info(
            "reconcile.applied",
            user_id=user_id,
            customer_id=customer_id,
            status=payload.status,
            path="user",
        )
        return record

    async def apply(
        self,
        customer_id: str | None,
        payload: SubscriptionPayload,
        user_id: str | None = None,
    ) -> bool:
        """Apply by customer id, falling back to an explicit user id.

        Returns whether a row was written.
        """
        if customer_id and await self.apply_by_customer_id(customer_id, payload):
            return True

        if user_id:
            await self.apply_by_user_id(user_id, customer_id, payload)
            return True

        logger.warning(
            "reconcile.unlinked_customer",
            customer_id=customer_id,
            subscription_id=payload.provider_subscription_id,
        )
        return False

    async def link_customer(self, user_id: str, customer_id: str) -> SubscriptionRecord:
        """Attach a Stripe customer to a user, creating the row if needed.

        An existing row keeps its status; a new one starts inactive. A customer
        id already on the row is never replaced.
        """
        existing = await self.store.get(user_id)
        if existing is None:
            return await self.store.upsert(self._record(user_id, customer_id, INACTIVE_PAYLOAD))

        if existing.provider_customer_id == customer_id:
            return existing

        if existing.provider_customer_id:
            logger.warning(
                "reconcile.customer_conflict",
                user_id=user_id,
                customer_id=existing.provider_customer_id,
                rejected_customer_id=customer_id,
            )
            return existing

        record = existing.model_copy(
            update={"provider_customer_id": customer_id, "updated_at": self._clock()}
        )
        return await self.store.upsert(record)

    async def record_inactive(self, user_id: str, customer_id: str) -> SubscriptionRecord:
        """Mark a user as having no subscription at all."""
        return await self.apply_by_user_id(user_id, customer_id, INACTIVE_PAYLOAD)
