import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from .jwt_handler import verify_access_token

# slowapi limit strings, e.g. "20/minute"
LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "20/minute")
ORDER_RATE_LIMIT = os.getenv("ORDER_RATE_LIMIT", "10/minute")


def user_id_or_ip(request: Request) -> str:
    """
    Rate-limit key: the JWT subject for signed-in callers, otherwise the
    client address. Order placement is therefore limited per account.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"

    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        payload = verify_access_token(token)
        if payload and "sub" in payload:
            return f"user:{payload['sub']}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=user_id_or_ip,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)
