from .jwt_handler import create_access_token, verify_access_token
from .api_key import INTERNAL_API_HEADERS, verify_api_key
from .dependencies import (
    ROLE_ADMIN,
    ROLE_USER,
    CurrentUser,
    get_current_user,
    require_admin,
    verify_internal_api_key,
)
from .rate_limiter import LOGIN_RATE_LIMIT, ORDER_RATE_LIMIT, limiter, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "INTERNAL_API_HEADERS",
    "verify_api_key",
    "ROLE_ADMIN",
    "ROLE_USER",
    "CurrentUser",
    "get_current_user",
    "require_admin",
    "verify_internal_api_key",
    "LOGIN_RATE_LIMIT",
    "ORDER_RATE_LIMIT",
    "limiter",
    "user_id_or_ip",
]
