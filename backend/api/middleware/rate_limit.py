"""
Rate limiting using slowapi.

Limits are keyed by client IP. Storage is Redis when ``REDIS_URL`` is set and
per-process memory otherwise.

Rate Limits:
- Login: 5 per minute
- Registration: 3 per minute
- Analysis submission: 20 per minute
- Checkout: 5 per minute
- Stripe webhook: 100 per minute
- Default: 100 requests per minute
"""

import ipaddress
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)


def _public_ip(value: str) -> str | None:
    """Return ``value`` if it parses as a public IP address."""
    try:
        addr = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    # Private addresses in proxy headers are spoofable
    if addr.is_private or addr.is_loopback or addr.is_link_local:
        return None
    return str(addr)


def _get_real_ip(request: Request) -> str:
    """Client IP from X-Forwarded-For / X-Real-IP, else the socket peer.

    Without this every request behind a reverse proxy would share the
    proxy's rate-limit bucket.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = _public_ip(forwarded.split(",")[0])
        if candidate:
            return candidate
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        candidate = _public_ip(real_ip)
        if candidate:
            return candidate
    return get_remote_address(request)


# Format: "count/period" where period can be: second, minute, hour, day
RATE_LIMITS = {
    "login": "5/minute",
    "register": "3/minute",
    "analysis": "20/minute",
    "checkout": "5/minute",
    "webhook": "100/minute",
    "default": "100/minute",
}

_storage_uri = settings.redis_url if settings.redis_url else "memory://"

if not settings.redis_url and settings.is_production:
    logger.warning(
        "Rate limiter using in-memory storage; limits are per process. Set REDIS_URL."
    )

limiter = Limiter(
    key_func=_get_real_ip,
    storage_uri=_storage_uri,
    default_limits=[RATE_LIMITS["default"]],
)


def get_rate_limit(endpoint: str) -> str:
    """
    Get rate limit configuration for a specific endpoint.

    Example:
        >>> get_rate_limit("login")
        '5/minute'
        >>> get_rate_limit("unknown")
        '100/minute'
    """
    return RATE_LIMITS.get(endpoint, RATE_LIMITS["default"])
