"""Services package."""

from dataclasses import dataclass

from redis.asyncio import Redis

from src.config import Settings
from src.services.billing import BillingService
from src.services.provider import PaymentProvider
from src.services.reconciliation import ReconciliationEngine
from src.services.store import SubscriptionStore
from src.services.sync import SubscriptionSync
from src.services.webhooks import WebhookIngress


@dataclass
class Services:
    """Per-process service graph, built once from one settings instance."""

    settings: Settings
    store: SubscriptionStore
    provider: PaymentProvider
    engine: ReconciliationEngine
    webhooks: WebhookIngress
    sync: SubscriptionSync
    billing: BillingService


def build_services(
    settings: Settings,
    redis: Redis,
    provider: PaymentProvider | None = None,
) -> Services:
    """Wire the services together around a Redis connection."""
    store = SubscriptionStore(redis)
    provider = provider or PaymentProvider(settings)
    engine = ReconciliationEngine(store)
    return Services(
        settings=settings,
        store=store,
        provider=provider,
        engine=engine,
        webhooks=WebhookIngress(settings, engine, provider),
        sync=SubscriptionSync(engine, provider),
        billing=BillingService(settings, engine, provider),
    )


__all__ = [
    "BillingService",
    "PaymentProvider",
    "ReconciliationEngine",
    "Services",
    "SubscriptionStore",
    "SubscriptionSync",
    "WebhookIngress",
    "build_services",
]
