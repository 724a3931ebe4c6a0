"""FastAPI dependencies for authentication, services and the access gate."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.auth.jwt import decode_access_token
from src.config import Settings
from src.exceptions import AuthenticationError
from src.models import TokenData
from src.services import Services
from src.services.access import can_access

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    """Service graph attached to the application at startup."""
    return request.app.state.services


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.services.settings


async def get_current_user(
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> TokenData:
    """Resolve the caller from a bearer token or raise 401."""
    if not bearer or not bearer.credentials:
        raise AuthenticationError("Missing Authorization token")

    user = decode_access_token(bearer.credentials, settings)
    if user is None:
        raise AuthenticationError("Invalid user token")

    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
ServicesDep = Annotated[Services, Depends(get_services)]


async def require_paid_access(
    current_user: CurrentUser,
    services: ServicesDep,
) -> TokenData:
    """
    Require an active subscription for the caller.

    Usage:
        @router.post("/clients", dependencies=[Depends(require_paid_access)])
    """
    record = await services.store.get(current_user.sub)
    if not can_access(record):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="An active subscription is required",
        )
    return current_user


PaidUser = Annotated[TokenData, Depends(require_paid_access)]
