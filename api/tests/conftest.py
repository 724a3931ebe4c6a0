"""Pytest configuration and fixtures."""

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from src.auth.jwt import create_access_token
from src.config import Settings
from src.main import create_app
from src.services import build_services

from fakes import WEBHOOK_SECRET, FakeProvider, FakeRedis


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        secret_key="test-secret-key-with-enough-length-000",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_price_id="price_monthly",
        site_url="https://app.example.com",
        prometheus_enabled=False,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def services(settings, fake_redis, provider):
    return build_services(settings, fake_redis, provider=provider)


@pytest.fixture
def app(settings, fake_redis, provider):
    return create_app(settings, redis=fake_redis, provider=provider)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers(settings) -> dict:
    token = create_access_token({"sub": "user_1", "email": "owner@example.com"}, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def future_ts() -> int:
    return int(datetime(2099, 1, 1, tzinfo=UTC).timestamp())
