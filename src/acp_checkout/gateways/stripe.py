"""Stripe payment gateway."""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from acp_checkout.exceptions import (
    InternalError,
    PaymentGatewayUnavailableError,
    WebhookSignatureError,
)
from acp_checkout.gateways.base import (
    DEFAULT_WEBHOOK_TOLERANCE_SECONDS,
    PaymentGateway,
    parse_payment_intent_event,
    verify_signature_header,
)
from acp_checkout.models import (
    AuthorizationResult,
    GatewayEvent,
    PaymentAuthorized,
    PaymentDeclined,
    PaymentError,
    RefundDeclined,
    RefundResult,
    RefundSucceeded,
)

logger = logging.getLogger(__name__)

# PaymentIntent statuses that mean the funds are (or will be) captured
SETTLED_STATUSES = frozenset({"succeeded", "processing"})

# Responses that carry a buyer-side refusal; other 4xx are request or key faults
DECLINE_STATUS_CODES = frozenset({400, 402})

PAYMENT_SOURCE = "acp_chatgpt"

TEST_CARD_NUMBER = "4242424242424242"


class StripeGateway(PaymentGateway):
    """Stripe gateway over the REST API (PaymentIntents and Refunds)."""

    name = "stripe"

    def __init__(
        self,
        api_key: str,
        webhook_secret: Optional[str] = None,
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 30.0,
        webhook_tolerance_seconds: int = DEFAULT_WEBHOOK_TOLERANCE_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_base = api_base.rstrip("/")
        self.webhook_tolerance_seconds = webhook_tolerance_seconds
        self._client = client or httpx.AsyncClient(
            base_url=self.api_base,
            auth=(api_key, ""),
            timeout=timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _post(
        self,
        path: str,
        data: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> httpx.Response:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        try:
            response = await self._client.post(path, data=data, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Stripe request to %s failed: %s", path, e)
            raise PaymentGatewayUnavailableError(
                f"Stripe request failed: {e.__class__.__name__}",
                details={"path": path},
            ) from e

        if response.status_code == 429 or response.status_code >= 500:
            logger.error(
                "Stripe returned %d for %s", response.status_code, path
            )
            raise PaymentGatewayUnavailableError(
                f"Stripe returned HTTP {response.status_code}",
                details={"path": path, "status_code": response.status_code},
            )
        return response

    @staticmethod
    def _error_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json().get("error", {}) or {}
        except ValueError:
            return {"message": response.text}

    def _rejected(self, response: httpx.Response, path: str) -> InternalError:
        """Error for a non-2xx response that is not a buyer-side decline."""
        error = self._error_body(response)
        logger.error(
            "Stripe rejected request to %s with %d: %s",
            path,
            response.status_code,
            error.get("message"),
        )
        return InternalError(
            f"Stripe rejected the request (HTTP {response.status_code})",
            details={
                "path": path,
                "status_code": response.status_code,
                "type": error.get("type"),
            },
        )

    async def authorize_and_capture(
        self,
        amount: int,
        currency: str,
        token: str,
        correlation_id: str,
        idempotency_key: Optional[str] = None,
    ) -> AuthorizationResult:
        """Create and confirm a PaymentIntent with the shared payment token."""
        payload = {
            "amount": amount,
            "currency": currency.lower(),
            "payment_method": token,
            "confirm": "true",
            "automatic_payment_methods[enabled]": "true",
            "automatic_payment_methods[allow_redirects]": "never",
            "metadata[checkout_id]": correlation_id,
            "metadata[source]": PAYMENT_SOURCE,
        }

        response = await self._post("/payment_intents", payload, idempotency_key)

        if response.is_error:
            if response.status_code not in DECLINE_STATUS_CODES:
                raise self._rejected(response, "/payment_intents")

            error = self._error_body(response)
            logger.warning(
                "Stripe payment declined for %s: %s",
                correlation_id,
                error.get("code") or error.get("message"),
            )
            intent = error.get("payment_intent") or {}
            return PaymentDeclined(
                PaymentError(
                    code=error.get("decline_code") or error.get("code"),
                    message=error.get("message") or "Payment failed",
                    category=error.get("type"),
                ),
                transaction_id=intent.get("id"),
            )

        data = response.json()
        status = data.get("status", "")
        if status not in SETTLED_STATUSES:
            # e.g. requires_action: cannot be completed without the buyer
            return PaymentDeclined(
                PaymentError(
                    code=f"payment_intent_{status}" if status else "payment_intent_unknown",
                    message=f"Payment requires further action ({status or 'unknown'})",
                    category="payment_intent_status",
                ),
                transaction_id=data.get("id"),
            )

        return PaymentAuthorized(
            transaction_id=data["id"],
            status=status,
            amount_captured=data.get("amount_received", 0),
        )

    async def refund(
        self,
        transaction_id: str,
        amount: Optional[int] = None,
    ) -> RefundResult:
        payload: Dict[str, Any] = {"payment_intent": transaction_id}
        if amount:
            payload["amount"] = amount

        response = await self._post("/refunds", payload)
        if response.is_error:
            if response.status_code not in DECLINE_STATUS_CODES:
                raise self._rejected(response, "/refunds")

            error = self._error_body(response)
            logger.warning("Stripe refund failed for %s: %s", transaction_id, error.get("message"))
            return RefundDeclined(
                message=error.get("message") or "Refund failed",
                code=error.get("code"),
            )

        data = response.json()
        return RefundSucceeded(
            refund_id=data["id"],
            status=data.get("status", ""),
            amount=data.get("amount", amount or 0),
        )

    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> GatewayEvent:
        """Verify the Stripe-Signature header and parse the event."""
        verify_signature_header(
            payload,
            signature,
            self.webhook_secret or "",
            tolerance_seconds=self.webhook_tolerance_seconds,
        )
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from e
        return parse_payment_intent_event(event)

    async def create_test_payment_method(self) -> str:
        """Create a card payment method with Stripe's test card."""
        payload = {
            "type": "card",
            "card[number]": TEST_CARD_NUMBER,
            "card[exp_month]": 12,
            "card[exp_year]": datetime.now().year + 1,
            "card[cvc]": "123",
        }
        response = await self._post("/payment_methods", payload)
        if response.is_error:
            error = self._error_body(response)
            raise InternalError(
                f"Could not create test payment method: {error.get('message', 'unknown error')}",
                details={"code": error.get("code")},
            )
        return response.json()["id"]

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
