"""
Middleware for request tracking and logging.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from creatorpay.logging_config import get_logger

logger = get_logger(__name__)


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    """
    Add unique request_id to each request for tracing.
    Binds request_id (and the caller, when known) to structlog context.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

    clear_contextvars()
    bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    user_id = request.headers.get("X-User-Id")
    if user_id:
        bind_contextvars(user_id=user_id)

    request.state.request_id = request_id

    logger.info(
        "request_started",
        client_host=request.client.host if request.client else None,
    )

    start_time = time.time()
    try:
        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    except Exception as exc:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            "request_failed",
            exc_info=exc,
            duration_ms=round(duration_ms, 2),
        )
        raise
    finally:
        clear_contextvars()
