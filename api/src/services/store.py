"""Redis-backed subscription store.

One hash per user holds the latest subscription snapshot, and a plain string
key maps each Stripe customer id back to its user. Writes are unconditional
upserts: whichever write lands last wins.
"""

from datetime import datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.exceptions import StoreError
from src.models import SubscriptionRecord
from src.utils.logging import get_logger

logger = get_logger(__name__)

RECORD_KEY = "subscription:{user_id}"
CUSTOMER_INDEX_KEY = "subscription:customer:{customer_id}"


def _text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    return value.decode() if isinstance(value, bytes) else str(value)


def _field(data: dict, name: str) -> str:
    # Clients created with decode_responses=True hand back str keys
    return _text(data.get(name.encode(), data.get(name)))


def record_to_mapping(record: SubscriptionRecord) -> dict[str, str]:
    """Flatten a record into Redis hash fields; None becomes an empty string."""
    return {
        "user_id": record.user_id,
        "provider_customer_id": record.provider_customer_id or "",
        "provider_subscription_id": record.provider_subscription_id or "",
        "status": record.status,
        "current_period_end": (
            record.current_period_end.isoformat() if record.current_period_end else ""
        ),
        "updated_at": record.updated_at.isoformat(),
    }


def record_from_mapping(data: dict) -> SubscriptionRecord:
    """Rebuild a record from a Redis hash."""
    period_end = _field(data, "current_period_end")
    return SubscriptionRecord(
        user_id=_field(data, "user_id"),
        provider_customer_id=_field(data, "provider_customer_id") or None,
        provider_subscription_id=_field(data, "provider_subscription_id") or None,
        status=_field(data, "status"),
        current_period_end=datetime.fromisoformat(period_end) if period_end else None,
        updated_at=datetime.fromisoformat(_field(data, "updated_at")),
    )


class SubscriptionStore:
    """Read / upsert access to subscription snapshots."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def get(self, user_id: str) -> SubscriptionRecord | None:
        """Return the snapshot for a user, or None if none was ever written."""
        try:
            data = await self._redis.hgetall(RECORD_KEY.format(user_id=user_id))
        except RedisError as e:
            raise StoreError(f"Failed to read subscription for {user_id}: {e}") from e

        if not data:
            return None
        return record_from_mapping(data)

    async def find_user_by_customer(self, customer_id: str) -> str | None:
        """Resolve the user linked to a Stripe customer id."""
        try:
            user_id = await self._redis.get(
                CUSTOMER_INDEX_KEY.format(customer_id=customer_id)
            )
        except RedisError as e:
            raise StoreError(f"Failed to look up customer {customer_id}: {e}") from e

        return _text(user_id) or None

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Write the full snapshot and refresh the customer index."""
        pipe = self._redis.pipeline(transaction=True)
        pipe.hset(RECORD_KEY.format(user_id=record.user_id), mapping=record_to_mapping(record))
        if record.provider_customer_id:
            pipe.set(
                CUSTOMER_INDEX_KEY.format(customer_id=record.provider_customer_id),
                record.user_id,
            )

        try:
            await pipe.execute()
        except RedisError as e:
            raise StoreError(
                f"Failed to write subscription for {record.user_id}: {e}"
            ) from e

        logger.debug(
            "store.upserted",
            user_id=record.user_id,
            status=record.status,
        )
        return record

    async def ping(self) -> bool:
        """Check the store connection."""
        try:
            return bool(await self._redis.ping())
        except RedisError:
            return False
