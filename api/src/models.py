"""Pydantic models for subscription state, provider events and API payloads."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Metadata key tying a Stripe customer / subscription back to our user
USER_ID_METADATA_KEY = "user_id"


class SubscriptionStatus(str, Enum):
    """Known subscription statuses.

    Stored statuses are normalized: ``trialing`` folds into ``active``.
    Unknown provider statuses are stored lower-cased as plain strings.
    """

    ACTIVE = "active"
    TRIALING = "trialing"
    INACTIVE = "inactive"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


ACCESS_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value})


# ============ Authentication Models ============


class TokenData(BaseModel):
    """JWT token payload data."""

    sub: str  # User ID
    email: str | None = None
    exp: datetime | None = None


# ============ Subscription Store Models ============


class SubscriptionPayload(BaseModel):
    """Normalized subscription fields written by every reconciliation path."""

    model_config = ConfigDict(frozen=True)

    provider_subscription_id: str | None
    status: str
    current_period_end: datetime | None = None


class SubscriptionRecord(BaseModel):
    """Latest known subscription snapshot for one user."""

    user_id: str
    provider_customer_id: str | None = None
    provider_subscription_id: str | None = None
    status: str = SubscriptionStatus.INACTIVE.value
    current_period_end: datetime | None = None
    updated_at: datetime


# ============ Payment Provider Models ============


class ProviderSubscription(BaseModel):
    """The subset of a Stripe subscription object this service reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    customer: str | None = None
    status: str | None = None
    current_period_end: Any = None
    created: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    items: dict[str, Any] | None = None

    @field_validator("customer", mode="before")
    @classmethod
    def _customer_id(cls, value: Any) -> Any:
        # Expanded customers arrive as objects
        if isinstance(value, dict):
            return value.get("id")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata(cls, value: Any) -> Any:
        return value or {}

    @property
    def user_id(self) -> str | None:
        """User id carried in the subscription metadata, if any."""
        value = self.metadata.get(USER_ID_METADATA_KEY)
        return str(value) if value else None


class ProviderCustomer(BaseModel):
    """The subset of a Stripe customer object this service reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ============ Provider Event Models ============


class SubscriptionChanged(BaseModel):
    """``customer.subscription.created`` / ``customer.subscription.updated``."""

    kind: Literal["subscription_changed"] = "subscription_changed"
    event_id: str | None = None
    event_type: str
    subscription: ProviderSubscription


class SubscriptionDeleted(BaseModel):
    """``customer.subscription.deleted``."""

    kind: Literal["subscription_deleted"] = "subscription_deleted"
    event_id: str | None = None
    event_type: str
    subscription: ProviderSubscription


class SubscriptionReference(BaseModel):
    """Checkout / invoice events that only reference a subscription id."""

    kind: Literal["subscription_reference"] = "subscription_reference"
    event_id: str | None = None
    event_type: str
    subscription_id: str | None = None
    customer_id: str | None = None
    user_id: str | None = None


class UnhandledEvent(BaseModel):
    """Any event type this service does not act on."""

    kind: Literal["unhandled"] = "unhandled"
    event_id: str | None = None
    event_type: str


ProviderEvent = Union[
    SubscriptionChanged, SubscriptionDeleted, SubscriptionReference, UnhandledEvent
]


# ============ API Models ============


class CheckoutSessionRequest(BaseModel):
    """Checkout session creation request.

    Accepts camelCase (web client) and snake_case field names.
    """

    price_id: str | None = Field(
        default=None, validation_alias=AliasChoices("priceId", "price_id")
    )
    success_url: str | None = Field(
        default=None, validation_alias=AliasChoices("successUrl", "success_url")
    )
    cancel_url: str | None = Field(
        default=None, validation_alias=AliasChoices("cancelUrl", "cancel_url")
    )


class PortalSessionRequest(BaseModel):
    """Billing portal session request."""

    return_url: str | None = Field(
        default=None, validation_alias=AliasChoices("returnUrl", "return_url")
    )


class SessionURLResponse(BaseModel):
    """Redirect target for a checkout or portal session."""

    url: str


class SyncResponse(BaseModel):
    """Result of a sync-on-demand call."""

    status: str
    current_period_end: datetime | None = None


class SubscriptionSnapshot(BaseModel):
    """Stored subscription snapshot plus the evaluated access gate."""

    status: str
    current_period_end: datetime | None = None
    updated_at: datetime | None = None
    can_access: bool


# ============ Error Models ============


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str


# ============ Health Models ============


class HealthCheck(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    redis: str
    stripe: str
