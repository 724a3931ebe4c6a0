"""Pull-based subscription sync.

Called by the client right after it returns from checkout or the billing
portal, so a delayed or missing webhook does not leave the user locked out.
"""

from src.exceptions import NotFoundError
from src.models import ACCESS_STATUSES, ProviderSubscription, SyncResponse
from src.services.provider import PaymentProvider
from src.services.reconciliation import ReconciliationEngine, normalize
from src.utils.logging import get_logger

logger = get_logger(__name__)


def select_subscription(
    subscriptions: list[ProviderSubscription],
) -> ProviderSubscription | None:
    """Pick the subscription that decides the user's state.

    The first active or trialing one wins; otherwise the most recently
    created subscription in any status.
    """
    for sub in subscriptions:
        if (sub.status or "").lower() in ACCESS_STATUSES:
            return sub

    if not subscriptions:
        return None
    return max(subscriptions, key=lambda sub: sub.created)


class SubscriptionSync:
    """Reconciles one user's snapshot directly against Stripe."""

    def __init__(self, engine: ReconciliationEngine, provider: PaymentProvider) -> None:
        self._engine = engine
        self._provider = provider

    async def sync(self, user_id: str) -> SyncResponse:
        """Fetch the user's current subscription from Stripe and store it.

        Raises:
            NotFoundError: no Stripe customer is tagged with this user.
            ProviderError: Stripe call failed.
            StoreError: writing the snapshot failed.
        """
        customer = await self._provider.find_customer(user_id)
        if customer is None:
            raise NotFoundError("No Stripe customer found")

        subscriptions = await self._provider.list_subscriptions(customer.id)
        pick = select_subscription(subscriptions)

        if pick is None:
            record = await self._engine.record_inactive(user_id, customer.id)
        else:
            record = await self._engine.apply_by_user_id(user_id, customer.id, normalize(pick))

        logger.info(
            "sync.completed",
            user_id=user_id,
            customer_id=customer.id,
            subscriptions=len(subscriptions),
            status=record.status,
        )
        return SyncResponse(status=record.status, current_period_end=record.current_period_end)
