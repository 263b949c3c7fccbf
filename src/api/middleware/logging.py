"""Request logging middleware."""

import time
from typing import Callable

import structlog
from fastapi import Request

from src.utils.logging import get_logger

logger = get_logger(__name__)


async def request_logging_middleware(request: Request, call_next: Callable):
    """
    Log every request with its status and duration.

    The forwarded caller id and request path are bound to the structlog
    context for the duration of the request, so service logs carry them too.
    The level follows the status: error for 5xx, warning for 4xx, info
    otherwise.
    """
    context = {"method": request.method, "path": request.url.path}
    user_id = request.headers.get("X-User-Id")
    if user_id:
        context["user_id"] = user_id

    with structlog.contextvars.bound_contextvars(**context):
        start_time = time.perf_counter()

        response = await call_next(request)

        log_data = {
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        }
        if request.client:
            log_data["client_ip"] = request.client.host

        if response.status_code >= 500:
            logger.error("Request failed", **log_data)
        elif response.status_code >= 400:
            logger.warning("Request error", **log_data)
        else:
            logger.info("Request completed", **log_data)

    return response
