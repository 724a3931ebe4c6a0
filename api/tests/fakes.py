"""Test doubles for Redis and the Stripe client."""

import hashlib
import hmac
import json
import time

from redis.exceptions import ConnectionError as RedisConnectionError

from src.exceptions import ProviderError
from src.models import ProviderCustomer, ProviderSubscription

WEBHOOK_SECRET = "whsec_test_secret"


class FakePipeline:
    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def hset(self, key, *args, mapping=None):
        self._ops.append(("hset", key, mapping))
        return self

    def set(self, key, value):
        self._ops.append(("set", key, value))
        return self

    async def execute(self):
        if self._redis.fail:
            raise RedisConnectionError("connection refused")
        results = []
        for op, key, value in self._ops:
            if op == "hset":
                results.append(await self._redis.hset(key, mapping=value))
            else:
                results.append(await self._redis.set(key, value))
        self._ops = []
        return results


class FakeRedis:
    """In-memory stand-in for the parts of redis.asyncio.Redis the store uses."""

    def __init__(self, fail=False):
        self.hashes = {}
        self.strings = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def hgetall(self, key):
        self._check()
        return dict(self.hashes.get(key, {}))

    async def hset(self, key, *args, mapping=None):
        self._check()
        mp = self.hashes.setdefault(key, {})
        for k, v in (mapping or {}).items():
            mp[k.encode()] = v.encode() if isinstance(v, str) else str(v).encode()
        return len(mapping or {})

    async def get(self, key):
        self._check()
        return self.strings.get(key)

    async def set(self, key, value):
        self._check()
        self.strings[key] = value.encode() if isinstance(value, str) else value
        return True

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        return


class FakeProvider:
    """Payment provider double backed by dicts."""

    def __init__(self):
        self.customers: dict[str, ProviderCustomer] = {}
        self.subscriptions: dict[str, list[ProviderSubscription]] = {}
        self.checkout_calls = []
        self.portal_calls = []
        self.retrieved = []
        self.fail = False
        self.configured = True

    def _check(self):
        if self.fail:
            raise ProviderError("stripe unavailable")

    def add_customer(self, user_id, customer_id):
        self.customers[user_id] = ProviderCustomer(
            id=customer_id, metadata={"user_id": user_id}
        )

    def add_subscription(self, customer_id, **fields):
        sub = ProviderSubscription.model_validate({"customer": customer_id, **fields})
        self.subscriptions.setdefault(customer_id, []).append(sub)
        return sub

    async def find_customer(self, user_id):
        self._check()
        return self.customers.get(user_id)

    async def create_customer(self, user_id, email=None):
        self._check()
        customer = ProviderCustomer(
            id=f"cus_{user_id}", email=email, metadata={"user_id": user_id}
        )
        self.customers[user_id] = customer
        return customer

    async def list_subscriptions(self, customer_id, limit=10):
        self._check()
        return list(self.subscriptions.get(customer_id, []))[:limit]

    async def get_subscription(self, subscription_id):
        self._check()
        self.retrieved.append(subscription_id)
        for subs in self.subscriptions.values():
            for sub in subs:
                if sub.id == subscription_id:
                    return sub
        raise ProviderError(f"No such subscription: {subscription_id}")

    async def create_checkout_session(self, customer_id, price_id, success_url, cancel_url, user_id):
        self._check()
        self.checkout_calls.append(
            {
                "customer_id": customer_id,
                "price_id": price_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "user_id": user_id,
            }
        )
        return f"https://checkout.stripe.test/{customer_id}"

    async def create_portal_session(self, customer_id, return_url):
        self._check()
        self.portal_calls.append({"customer_id": customer_id, "return_url": return_url})
        return f"https://billing.stripe.test/{customer_id}"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_1") -> bytes:
    """Serialize a Stripe event envelope."""
    return json.dumps(
        {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}
    ).encode()


