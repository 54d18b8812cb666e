"""Deterministic in-process gateway for development and tests.

Outcomes are chosen by payment token:

    tok_success              succeeded (also any unrecognized token)
    tok_processing           processing
    tok_decline              card_declined
    tok_insufficient_funds   insufficient_funds
    tok_expired_card         expired_card
    tok_unavailable          raises PaymentGatewayUnavailableError
"""
from __future__ import annotations

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from acp_checkout.exceptions import (
    PaymentGatewayUnavailableError,
    WebhookSignatureError,
)
from acp_checkout.gateways.base import (
    PaymentGateway,
    parse_payment_intent_event,
    sign_payload,
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

DECLINES: Dict[str, PaymentError] = {
    "tok_decline": PaymentError("card_declined", "Your card was declined.", "card_error"),
    "tok_insufficient_funds": PaymentError(
        "insufficient_funds", "Your card has insufficient funds.", "card_error"
    ),
    "tok_expired_card": PaymentError("expired_card", "Your card has expired.", "card_error"),
}

UNAVAILABLE_TOKEN = "tok_unavailable"
PROCESSING_TOKEN = "tok_processing"


@dataclass
class _Capture:
    amount: int
    currency: str
    correlation_id: str
    refunded: int = 0


class SimulatedGateway(PaymentGateway):
    """In-memory gateway with token-driven outcomes and idempotent replay."""

    name = "simulated"

    def __init__(
        self,
        webhook_secret: str = "whsec_simulated",
        latency_seconds: float = 0.0,
    ):
        self.webhook_secret = webhook_secret
        self.latency_seconds = latency_seconds
        # Every authorize_and_capture call, replays included
        self.calls: List[Dict[str, Any]] = []
        self._results: Dict[str, AuthorizationResult] = {}
        self._captures: Dict[str, _Capture] = {}

    async def authorize_and_capture(
        self,
        amount: int,
        currency: str,
        token: str,
        correlation_id: str,
        idempotency_key: Optional[str] = None,
    ) -> AuthorizationResult:
        replayed = idempotency_key is not None and idempotency_key in self._results
        self.calls.append({
            "amount": amount,
            "currency": currency,
            "token": token,
            "correlation_id": correlation_id,
            "idempotency_key": idempotency_key,
            "replayed": replayed,
        })

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        if replayed:
            return self._results[idempotency_key]

        if token == UNAVAILABLE_TOKEN:
            raise PaymentGatewayUnavailableError("Simulated gateway unavailable")

        result: AuthorizationResult
        if token in DECLINES:
            result = PaymentDeclined(
                DECLINES[token],
                transaction_id=f"pi_sim_{secrets.token_hex(12)}",
            )
        else:
            transaction_id = f"pi_sim_{secrets.token_hex(12)}"
            self._captures[transaction_id] = _Capture(amount, currency, correlation_id)
            result = PaymentAuthorized(
                transaction_id=transaction_id,
                status="processing" if token == PROCESSING_TOKEN else "succeeded",
                amount_captured=amount,
            )

        if idempotency_key is not None:
            self._results[idempotency_key] = result
        return result

    @property
    def authorization_count(self) -> int:
        """Calls that reached the gateway without being an idempotent replay."""
        return sum(1 for call in self.calls if not call["replayed"])

    async def refund(
        self,
        transaction_id: str,
        amount: Optional[int] = None,
    ) -> RefundResult:
        capture = self._captures.get(transaction_id)
        if capture is None:
            return RefundDeclined(
                f"No such payment_intent: '{transaction_id}'",
                code="resource_missing",
            )

        remaining = capture.amount - capture.refunded
        amount = remaining if amount is None else amount
        if amount <= 0 or amount > remaining:
            return RefundDeclined(
                f"Refund amount ({amount}) is greater than unrefunded amount ({remaining})",
                code="amount_too_large",
            )

        capture.refunded += amount
        return RefundSucceeded(
            refund_id=f"re_sim_{secrets.token_hex(12)}",
            status="succeeded",
            amount=amount,
        )

    def sign_webhook(self, payload: bytes, timestamp: Optional[int] = None) -> str:
        """Signature header a real gateway would send with ``payload``."""
        return sign_payload(payload, self.webhook_secret, timestamp)

    async def verify_webhook(
        self,
        payload: bytes,
        signature: str,
    ) -> GatewayEvent:
        verify_signature_header(payload, signature, self.webhook_secret)
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from e
        return parse_payment_intent_event(event)

    async def create_test_payment_method(self) -> str:
        return f"pm_sim_{secrets.token_hex(12)}"
