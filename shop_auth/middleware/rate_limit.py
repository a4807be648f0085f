"""Rate limiting for credential-accepting endpoints"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from shop_auth.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting

    Priority:
    1. Authenticated user id (set by the authentication middleware)
    2. IP address (for anonymous callers, including login attempts)
    """
    auth = getattr(request.state, "auth", None)
    if auth is not None and auth.is_authenticated:
        return f"user:{auth.identity.id}"

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# Rate limit configurations for different endpoints
RATE_LIMITS = {
    "login": settings.RATE_LIMIT_LOGIN,
    "refresh": settings.RATE_LIMIT_LOGIN,
    "logout": "60/minute",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
