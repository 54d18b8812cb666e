"""Base payment gateway interface."""
from __future__ import annotations

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from acp_checkout.exceptions import WebhookSignatureError
from acp_checkout.models import (
    AuthorizationResult,
    GatewayEvent,
    PaymentError,
    RefundResult,
)

DEFAULT_WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentGateway(ABC):
    """Abstract interface for payment gateways."""

    name: str = "gateway"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def authorize_and_capture(
        self,
        amount: int,
        currency: str,
        token: str,
        correlation_id: str,
        idempotency_key: Optional[str] = None,
    ) -> AuthorizationResult:
        """
        Authorize and capture a payment in one step.

        Args:
            amount: Amount in minor currency units
            currency: ISO 4217 currency code
            token: Tokenized payment method supplied by the buyer's agent
            correlation_id: Checkout ID recorded with the payment
            idempotency_key: Key the gateway uses to deduplicate retries

        Returns:
            PaymentAuthorized or PaymentDeclined

        Raises:
            PaymentGatewayUnavailableError: If no outcome could be obtained
        """
        pass

    @abstractmethod
    async def refund(
        self,
        transaction_id: str,
        amount: Optional[int] = None,
    ) -> RefundResult:
        """
        Refund a captured payment, fully when amount is None.

        Returns:
            RefundSucceeded or RefundDeclined
        """
        pass

    @abstractmethod
    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> GatewayEvent:
        """
        Verify a webhook signature and parse the event.

        Raises:
            WebhookSignatureError: If the signature does not verify
        """
        pass

    @abstractmethod
    async def create_test_payment_method(self) -> str:
        """Create a payment method usable as a payment token in test mode."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``t=<timestamp>,v1=<hmac>`` signature header for a payload."""
    ts = timestamp if timestamp is not None else int(time.time())
    signed_payload = f"{ts}.".encode() + payload
    signature = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def verify_signature_header(
    payload: bytes,
    header: str,
    secret: str,
    tolerance_seconds: int = DEFAULT_WEBHOOK_TOLERANCE_SECONDS,
) -> None:
    """
    Verify a Stripe-style signature header.

    Header format: "t=timestamp,v1=signature[,v1=signature...]"

    Raises:
        WebhookSignatureError: If the header is malformed, stale or no
            signature matches
    """
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("Missing webhook signature header")

    timestamp: Optional[int] = None
    signatures: list[str] = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError("Malformed webhook signature timestamp")
        elif key == "v1":
            signatures.append(value)

    if timestamp is None or not signatures:
        raise WebhookSignatureError("Missing timestamp or signature in webhook header")

    if abs(int(time.time()) - timestamp) > tolerance_seconds:
        raise WebhookSignatureError("Webhook timestamp outside the tolerance zone")

    expected = sign_payload(payload, secret, timestamp).split("v1=", 1)[1]
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError("Webhook signature does not match payload")


def parse_payment_intent_event(event: Dict[str, Any]) -> GatewayEvent:
    """Normalize a payment-intent webhook event."""
    obj = event.get("data", {}).get("object", {}) or {}
    metadata = obj.get("metadata") or {}

    error = None
    last_error = obj.get("last_payment_error")
    if last_error:
        error = PaymentError(
            code=last_error.get("code"),
            message=last_error.get("message") or "Payment failed",
            category=last_error.get("type"),
        )

    return GatewayEvent(
        event_id=event.get("id", ""),
        event_type=event.get("type", ""),
        transaction_id=obj.get("id"),
        checkout_id=metadata.get("checkout_id"),
        status=obj.get("status"),
        amount=obj.get("amount_received", obj.get("amount")),
        error=error,
        payload=event,
    )
