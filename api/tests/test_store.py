from datetime import UTC, datetime

import pytest

from src.exceptions import StoreError
from src.models import SubscriptionRecord
from src.services.store import SubscriptionStore, record_from_mapping, record_to_mapping

from fakes import FakeRedis

NOW = datetime(2025, 6, 1, tzinfo=UTC)


@pytest.mark.asyncio
async def test_upsert_writes_record_and_customer_index():
    redis = FakeRedis()
    store = SubscriptionStore(redis)
    record = SubscriptionRecord(user_id="user_1", provider_customer_id="cus_1", status="inactive", updated_at=NOW)

    await store.upsert(record)

    assert await store.get("user_1") == record
    assert await store.find_user_by_customer("cus_1") == "user_1"
    assert redis.hashes["subscription:user_1"][b"current_period_end"] == b""


@pytest.mark.asyncio
async def test_missing_rows_are_none():
    store = SubscriptionStore(FakeRedis())
    assert await store.get("nobody") is None
    assert await store.find_user_by_customer("cus_nobody") is None


def test_mapping_accepts_str_keys():
    # Clients created with decode_responses=True return str keys and values
    mapping = record_to_mapping(
        SubscriptionRecord(
            user_id="user_1",
            provider_customer_id="cus_1",
            provider_subscription_id="sub_1",
            status="past_due",
            current_period_end=NOW,
            updated_at=NOW,
        )
    )
    record = record_from_mapping(mapping)
    assert record.status == "past_due"
    assert record.current_period_end == NOW


@pytest.mark.asyncio
async def test_redis_errors_become_store_errors():
    store = SubscriptionStore(FakeRedis(fail=True))
    with pytest.raises(StoreError):
        await store.get("user_1")
    with pytest.raises(StoreError):
        await store.upsert(SubscriptionRecord(user_id="user_1", updated_at=NOW))
    assert await store.ping() is False
