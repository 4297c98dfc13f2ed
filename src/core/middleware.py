"""
FastAPI middleware for request tracing and logging.

This module provides middleware that:
- Generates unique request IDs for tracing
- Logs request/response information
- Binds request and tenant context for correlation
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging import bind_context, clear_context, get_logger


logger = get_logger(__name__)

USER_ID_HEADER = "X-User-Id"


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds request tracing and logging.

    - Generates (or propagates) X-Request-ID
    - Binds request_id, method, path and the gateway-provided user id
      to every log emitted while handling the request
    - Logs request completion with duration
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])

        bind_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        user_id = request.headers.get(USER_ID_HEADER)
        if user_id:
            bind_context(user_id=user_id)

        start_time = time.perf_counter()

        logger.debug(
            "Request started",
            query_params=dict(request.query_params) if request.query_params else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            raise

        finally:
            # Clear context to prevent leaking to next request
            clear_context()
