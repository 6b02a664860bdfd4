"""Rate limiting configuration using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from linkhop_api.core.config import get_settings

settings = get_settings()


def get_real_client_ip(request: Request) -> str:
    """Get the real client IP address, handling proxies.

    Checks X-Forwarded-For and X-Real-IP headers before falling back
    to the direct client address.
    """
    # X-Forwarded-For can contain multiple IPs: client, proxy1, proxy2
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_real_client_ip,
    storage_uri=settings.rate_limit_storage_uri,  # memory:// or redis:// for distributed limits
    strategy="fixed-window",
    enabled=settings.rate_limit_enabled,
)

# High limit for the redirect hot path
RATE_LIMIT_REDIRECT = settings.rate_limit_redirect

# Lower limit for link creation - prevent spam/abuse
RATE_LIMIT_CREATE_LINK = settings.rate_limit_create
