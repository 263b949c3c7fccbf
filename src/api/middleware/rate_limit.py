"""Rate limiting using slowapi."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.config.settings import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


def rate_limit_key(request: Request) -> str:
    """Limit per forwarded caller id, falling back to the client address."""
    return request.headers.get("X-User-Id") or get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=["200/minute"],
    storage_uri="memory://",
    enabled=settings.app.env != "testing",
)


async def rate_limit_error_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a retry hint."""
    logger.warning(
        "Rate limit exceeded",
        key=rate_limit_key(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests. Please slow down.",
            "detail": str(exc.detail),
        },
        headers={"Retry-After": "60"},
    )


# Limits per endpoint type
RATE_LIMITS = {
    # A sync holds an IMAP session for seconds
    "mail_sync": "6/minute",
    "mail_list": "120/minute",
    "mail_thread": "60/minute",
    "thread_recalculate": "10/minute",
    "admin": "30/minute",
}
