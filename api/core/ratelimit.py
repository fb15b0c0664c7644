"""Rate limiting configuration using slowapi.

SCALABILITY NOTES:
- Production MUST use Redis: set RATELIMIT_STORAGE_URI="redis://host:port/db"
- memory:// storage does NOT work with multiple workers/replicas
- Each replica maintains separate counters, effectively multiplying limits by N
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

FALLBACK_CLIENT_IP = "127.0.0.1"

if not settings.debug and settings.ratelimit_storage_uri == "memory://":
    logger.warning(
        "ratelimit.memory_storage",
        extra={
            "hint": "Set RATELIMIT_STORAGE_URI to a Redis URL for multi-replica "
            "deployments"
        },
    )


def get_client_ip(request: Request) -> str:
    """Resolve the requester's network identity behind proxies.

    Used for visitor hashing only. Forwarding headers are client-controlled,
    so rate limiting keys on the socket peer instead (run uvicorn with
    ``--proxy-headers`` behind a trusted proxy).

    Order: first hop of X-Forwarded-For, X-Real-IP, socket peer, then a
    fixed fallback so hashing always has an input.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return FALLBACK_CLIENT_IP


_using_redis = settings.ratelimit_storage_uri.startswith("redis://")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["100/minute"],
    storage_uri=settings.ratelimit_storage_uri,
    # Graceful fallback to memory when Redis is temporarily unavailable
    in_memory_fallback_enabled=_using_redis,
    key_prefix="serenity:",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.warning(
        "ratelimit.exceeded",
        extra={
            "path": request.url.path,
            "client": get_remote_address(request),
            "limit": str(exc.detail),
        },
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


VERIFY_LIMIT = "30/minute"

BATCH_LIMIT = "10/minute"
