"""Exception handlers producing RFC 7807 Problem Details.

{
    "type": "https://acp-checkout.dev/errors/<error-type>",
    "title": "Human-readable error title",
    "status": 409,
    "detail": "Checkout not ready for payment",
    "instance": "/commerce/checkout/complete",
    "category": "precondition-failed",
    "request_id": "req_abc123",
    ... additional fields
}
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from acp_checkout.exceptions import CheckoutException

logger = logging.getLogger(__name__)

ERROR_TYPE_BASE = "https://acp-checkout.dev/errors"

# category -> title
CATEGORY_TITLES = {
    "validation": "Validation Error",
    "not-found": "Resource Not Found",
    "precondition-failed": "Precondition Failed",
    "payment-declined": "Payment Declined",
    "internal": "Internal Server Error",
}

STATUS_CATEGORIES = {
    400: "validation",
    404: "not-found",
    405: "validation",
    409: "precondition-failed",
    422: "validation",
}


@dataclass
class ProblemDetail:
    """RFC 7807 Problem Details representation."""
    type: str
    title: str
    status: int
    detail: str
    instance: str
    category: str
    request_id: str
    extensions: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "title": self.title,
            "status": self.status,
            "detail": self.detail,
            "instance": self.instance,
            "category": self.category,
            "request_id": self.request_id,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        if self.extensions:
            result.update(self.extensions)
        return result


def get_request_id(request: Request) -> str:
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", "unknown")


def create_error_response(
    *,
    error_code: str,
    category: str,
    message: str,
    status_code: int,
    request: Request,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    request_id = get_request_id(request)
    extensions: Dict[str, Any] = {"error": error_code}
    if details:
        extensions["details"] = details

    problem = ProblemDetail(
        type=f"{ERROR_TYPE_BASE}/{error_code.lower().replace('_', '-')}",
        title=CATEGORY_TITLES.get(category, "Error"),
        status=status_code,
        detail=message,
        instance=request.url.path,
        category=category,
        request_id=request_id,
        extensions=extensions,
    )
    return JSONResponse(
        status_code=status_code,
        content=problem.to_dict(),
        headers={"X-Request-ID": request_id},
        media_type="application/problem+json",
    )


def register_exception_handlers(app: FastAPI, expose_internal_details: bool = True) -> None:
    """Register all exception handlers with the FastAPI application."""

    @app.exception_handler(CheckoutException)
    async def checkout_exception_handler(
        request: Request, exc: CheckoutException
    ) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error(
                "Server error: %s - %s",
                exc.error_code,
                exc.message,
                extra={"error_code": exc.error_code, "details": exc.details},
            )
        else:
            logger.warning(
                "Client error: %s - %s",
                exc.error_code,
                exc.message,
                extra={"error_code": exc.error_code},
            )

        details = exc.details if expose_internal_details or exc.http_status < 500 else None
        return create_error_response(
            error_code=exc.error_code,
            category=exc.category,
            message=exc.message,
            status_code=exc.http_status,
            request=request,
            details=details,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        logger.warning("Validation error: %d field(s) failed", len(errors))
        return create_error_response(
            error_code="VALIDATION_ERROR",
            category="validation",
            message="One or more fields failed validation",
            status_code=422,
            request=request,
            details={"errors": errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        category = STATUS_CATEGORIES.get(exc.status_code, "internal")
        return create_error_response(
            error_code="NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}",
            category=category,
            message=str(exc.detail) if exc.detail else "An error occurred",
            status_code=exc.status_code,
            request=request,
        )
