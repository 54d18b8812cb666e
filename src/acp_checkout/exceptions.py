"""Exception hierarchy for the checkout service.

Every checkout error inherits from CheckoutException and carries:
- error_code: Machine-readable error code (e.g., "PRODUCT_NOT_FOUND")
- category: Error category exposed to callers (validation, not-found,
  precondition-failed, payment-declined, internal)
- http_status: HTTP status code used by the API layer
- message: Human-readable error message
- details: Optional additional context dictionary
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from acp_checkout.models import Checkout, CheckoutStatus, PaymentError


class CheckoutException(Exception):
    """Base exception for all checkout errors."""

    error_code: str = "CHECKOUT_ERROR"
    category: str = "internal"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        result = {
            "error": self.error_code,
            "category": self.category,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Validation Errors (400)
# =============================================================================

class ValidationError(CheckoutException):
    """Invalid or missing input."""

    error_code = "VALIDATION_ERROR"
    category = "validation"
    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class InvalidLineItems(ValidationError):
    """Line item list is empty or malformed."""

    error_code = "INVALID_LINE_ITEMS"

    def __init__(self, message: str = "No line items provided", **kwargs: Any) -> None:
        super().__init__(message, field="line_items", **kwargs)


class ProductNotFound(ValidationError):
    """A line item references a product the catalog does not know."""

    error_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product {product_id} not found",
            field="line_items",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class ProductUnavailable(ValidationError):
    """A line item references a product that is out of stock."""

    error_code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: str) -> None:
        super().__init__(
            f"Product {product_id} is out of stock",
            field="line_items",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class WebhookSignatureError(ValidationError):
    """Webhook payload signature is missing, malformed, stale or wrong."""

    error_code = "INVALID_WEBHOOK_SIGNATURE"


# =============================================================================
# Lookup & State Errors
# =============================================================================

class CheckoutNotFoundError(CheckoutException):
    """Unknown checkout ID."""

    error_code = "NOT_FOUND"
    category = "not-found"
    http_status = 404

    def __init__(self, checkout_id: str) -> None:
        super().__init__(
            "Checkout not found",
            details={"checkout_id": checkout_id},
        )
        self.checkout_id = checkout_id


class PreconditionFailedError(CheckoutException):
    """The checkout's status does not permit the requested transition."""

    error_code = "INVALID_STATE"
    category = "precondition-failed"
    http_status = 409

    def __init__(
        self,
        message: str,
        checkout_id: str,
        status: "CheckoutStatus",
        operation: str,
    ) -> None:
        super().__init__(
            message,
            details={
                "checkout_id": checkout_id,
                "status": status.value,
                "operation": operation,
            },
        )
        self.checkout_id = checkout_id
        self.status = status
        self.operation = operation


# =============================================================================
# Payment Errors
# =============================================================================

class PaymentDeclinedError(CheckoutException):
    """The gateway refused to authorize the payment.

    The checkout has already been moved to ``payment_failed`` and saved when
    this is raised; ``checkout`` is the updated snapshot.
    """

    error_code = "PAYMENT_DECLINED"
    category = "payment-declined"
    http_status = 402

    def __init__(self, checkout: "Checkout", payment_error: "PaymentError") -> None:
        super().__init__(
            payment_error.message or "Payment declined",
            details={
                "checkout_id": checkout.id,
                "payment_error": payment_error.to_dict(),
            },
        )
        self.checkout = checkout
        self.payment_error = payment_error


class InternalError(CheckoutException):
    """Unexpected gateway or store fault."""

    error_code = "INTERNAL_ERROR"
    category = "internal"
    http_status = 500


class PaymentGatewayUnavailableError(InternalError):
    """The gateway could not be reached or returned a server-side error.

    No outcome is known, so checkout state is left untouched.
    """

    error_code = "GATEWAY_UNAVAILABLE"
    http_status = 502


class RefundFailedError(InternalError):
    """The gateway rejected a refund."""

    error_code = "REFUND_FAILED"
    http_status = 502
