"""Billing error taxonomy.

Every error carries the HTTP status the handler boundary translates it to.
Services raise these; routers and the app-level exception handler turn them
into responses.
"""

from fastapi import status


class BillingError(Exception):
    """Base class for errors surfaced at the API boundary."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str | None = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__

    @property
    def client_message(self) -> str:
        """Message safe to show to the caller."""
        return self.public_message or self.message


class AuthenticationError(BillingError):
    """Missing or invalid caller credentials."""

    status_code = status.HTTP_401_UNAUTHORIZED


class VerificationError(BillingError):
    """Webhook signature missing or invalid."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BillingError):
    """No payment provider customer exists for the user."""

    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(BillingError):
    """Required input is missing."""

    status_code = status.HTTP_400_BAD_REQUEST


class StoreError(BillingError):
    """Subscription store read or write failed."""

    public_message = "Subscription store unavailable"


class ProviderError(BillingError):
    """Payment provider call failed."""

    public_message = "Payment provider request failed"


class ConfigurationError(BillingError):
    """A setting the request needs is not configured."""
