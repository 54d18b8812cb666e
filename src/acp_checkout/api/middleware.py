"""Request logging middleware with request IDs for tracing."""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from acp_checkout.logging_config import (
    generate_request_id,
    set_checkout_context,
    set_request_id,
)

logger = logging.getLogger("acp_checkout.api")

# Headers that should never be logged
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "cookie",
    "set-cookie",
    "stripe-signature",
})

SLOW_REQUEST_THRESHOLD_MS = 1000.0


def mask_sensitive_value(value: str) -> str:
    """Mask a sensitive value, showing only first/last characters."""
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def filter_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {
        k: (mask_sensitive_value(v) if k.lower() in SENSITIVE_HEADERS else v)
        for k, v in headers.items()
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a request ID to every request and logs request/response timing.

    An incoming X-Request-ID header is reused so agents can correlate their
    own logs with ours; it is echoed back on the response.
    """

    def __init__(self, app, exclude_paths: Optional[list[str]] = None):
        super().__init__(app)
        self.exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_request_id(request_id)
        set_checkout_context(None)
        request.state.request_id = request_id

        if request.url.path in self.exclude_paths:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        method = request.method
        path = request.url.path
        logger.debug(
            "Request started",
            extra={
                "event": "request_start",
                "method": method,
                "path": path,
                "headers": filter_headers(dict(request.headers)),
            },
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed",
                extra={
                    "event": "request_error",
                    "method": method,
                    "path": path,
                    "error_type": type(e).__name__,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        context = {
            "event": "request_complete",
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if response.status_code >= 500:
            logger.error("Request completed with server error", extra=context)
        elif response.status_code >= 400:
            logger.warning("Request completed with client error", extra=context)
        elif duration_ms > SLOW_REQUEST_THRESHOLD_MS:
            context["slow_request"] = True
            logger.warning("Slow request completed", extra=context)
        else:
            logger.info("Request completed", extra=context)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
