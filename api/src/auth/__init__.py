"""Authentication package."""

from src.auth.dependencies import (
    CurrentUser,
    PaidUser,
    ServicesDep,
    get_current_user,
    get_services,
    require_paid_access,
)
from src.auth.jwt import create_access_token, decode_access_token

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "get_services",
    "require_paid_access",
    "CurrentUser",
    "PaidUser",
    "ServicesDep",
]
