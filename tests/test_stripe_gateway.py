"""Tests for the Stripe gateway against a mocked REST API."""
from __future__ import annotations

import json
import time
from urllib.parse import parse_qs

import httpx
import pytest

from acp_checkout.exceptions import (
    InternalError,
    PaymentGatewayUnavailableError,
    WebhookSignatureError,
)
from acp_checkout.gateways import StripeGateway, sign_payload
from acp_checkout.models import (
    PaymentAuthorized,
    PaymentDeclined,
    RefundDeclined,
    RefundSucceeded,
)

WEBHOOK_SECRET = "whsec_test"


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def make_gateway(handler, captured=None) -> StripeGateway:
    def recording_handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return handler(request)

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(recording_handler),
        base_url="https://api.stripe.com/v1",
    )
    return StripeGateway(
        api_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        client=client,
    )


class TestAuthorizeAndCapture:
    """PaymentIntent creation and outcome mapping."""

    @pytest.mark.asyncio
    async def test_succeeded_intent(self):
        captured = []
        gateway = make_gateway(
            lambda request: httpx.Response(
                200,
                json={"id": "pi_123", "status": "succeeded", "amount_received": 1700},
            ),
            captured,
        )

        result = await gateway.authorize_and_capture(
            amount=1700,
            currency="USD",
            token="pm_card_visa",
            correlation_id="checkout_abc",
            idempotency_key="checkout_abc:1",
        )

        assert result == PaymentAuthorized("pi_123", "succeeded", 1700)

        request = captured[0]
        assert request.url.path == "/v1/payment_intents"
        assert request.headers["Idempotency-Key"] == "checkout_abc:1"
        form = _form(request)
        assert form["amount"] == "1700"
        assert form["currency"] == "usd"
        assert form["payment_method"] == "pm_card_visa"
        assert form["confirm"] == "true"
        assert form["automatic_payment_methods[allow_redirects]"] == "never"
        assert form["metadata[checkout_id]"] == "checkout_abc"
        assert form["metadata[source]"] == "acp_chatgpt"

    @pytest.mark.asyncio
    async def test_card_error_maps_to_decline(self):
        gateway = make_gateway(
            lambda request: httpx.Response(
                402,
                json={
                    "error": {
                        "type": "card_error",
                        "code": "card_declined",
                        "decline_code": "insufficient_funds",
                        "message": "Your card has insufficient funds.",
                        "payment_intent": {"id": "pi_declined", "status": "requires_payment_method"},
                    }
                },
            )
        )

        result = await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

        assert isinstance(result, PaymentDeclined)
        assert result.error.code == "insufficient_funds"
        assert result.error.category == "card_error"
        assert result.error.message == "Your card has insufficient funds."
        assert result.transaction_id == "pi_declined"

    @pytest.mark.asyncio
    async def test_requires_action_maps_to_decline(self):
        gateway = make_gateway(
            lambda request: httpx.Response(
                200, json={"id": "pi_123", "status": "requires_action"}
            )
        )

        result = await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

        assert isinstance(result, PaymentDeclined)
        assert result.error.code == "payment_intent_requires_action"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        gateway = make_gateway(lambda request: httpx.Response(503, json={}))

        with pytest.raises(PaymentGatewayUnavailableError):
            await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

    @pytest.mark.asyncio
    async def test_rate_limit_is_unavailable(self):
        gateway = make_gateway(lambda request: httpx.Response(429, json={}))

        with pytest.raises(PaymentGatewayUnavailableError):
            await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

    @pytest.mark.asyncio
    async def test_network_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(PaymentGatewayUnavailableError) as exc_info:
            await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

        assert exc_info.value.http_status == 502

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403, 404])
    async def test_request_faults_are_not_declines(self, status_code):
        gateway = make_gateway(
            lambda request: httpx.Response(
                status_code,
                json={
                    "error": {
                        "type": "invalid_request_error",
                        "message": "Invalid API Key provided",
                    }
                },
            )
        )

        with pytest.raises(InternalError) as exc_info:
            await gateway.authorize_and_capture(1700, "USD", "pm_x", "checkout_abc")

        assert not isinstance(exc_info.value, PaymentGatewayUnavailableError)
        assert exc_info.value.details["status_code"] == status_code


class TestRefund:

    @pytest.mark.asyncio
    async def test_partial_refund(self):
        captured = []
        gateway = make_gateway(
            lambda request: httpx.Response(
                200, json={"id": "re_1", "status": "succeeded", "amount": 300}
            ),
            captured,
        )

        result = await gateway.refund("pi_123", 300)

        assert result == RefundSucceeded("re_1", "succeeded", 300)
        assert captured[0].url.path == "/v1/refunds"
        assert _form(captured[0]) == {"payment_intent": "pi_123", "amount": "300"}

    @pytest.mark.asyncio
    async def test_rejected_refund(self):
        gateway = make_gateway(
            lambda request: httpx.Response(
                400,
                json={"error": {"code": "charge_already_refunded", "message": "Already refunded"}},
            )
        )

        result = await gateway.refund("pi_123")

        assert result == RefundDeclined("Already refunded", "charge_already_refunded")

    @pytest.mark.asyncio
    async def test_bad_api_key_is_not_a_refund_decline(self):
        gateway = make_gateway(
            lambda request: httpx.Response(
                401, json={"error": {"message": "Invalid API Key provided"}}
            )
        )

        with pytest.raises(InternalError):
            await gateway.refund("pi_123")


class TestWebhooks:
    """Stripe-Signature verification."""

    def _event(self) -> bytes:
        return json.dumps({
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_123",
                    "status": "succeeded",
                    "amount_received": 1700,
                    "metadata": {"checkout_id": "checkout_abc"},
                }
            },
        }).encode()

    @pytest.mark.asyncio
    async def test_valid_signature(self):
        gateway = make_gateway(lambda request: httpx.Response(500))
        payload = self._event()

        event = await gateway.verify_webhook(payload, sign_payload(payload, WEBHOOK_SECRET))

        assert event.event_id == "evt_1"
        assert event.event_type == "payment_intent.succeeded"
        assert event.transaction_id == "pi_123"
        assert event.checkout_id == "checkout_abc"
        assert event.amount == 1700

    @pytest.mark.asyncio
    async def test_wrong_secret(self):
        gateway = make_gateway(lambda request: httpx.Response(500))
        payload = self._event()

        with pytest.raises(WebhookSignatureError):
            await gateway.verify_webhook(payload, sign_payload(payload, "whsec_other"))

    @pytest.mark.asyncio
    async def test_tampered_payload(self):
        gateway = make_gateway(lambda request: httpx.Response(500))
        payload = self._event()
        header = sign_payload(payload, WEBHOOK_SECRET)

        with pytest.raises(WebhookSignatureError):
            await gateway.verify_webhook(payload.replace(b"1700", b"1"), header)

    @pytest.mark.asyncio
    async def test_stale_timestamp(self):
        gateway = make_gateway(lambda request: httpx.Response(500))
        payload = self._event()
        header = sign_payload(payload, WEBHOOK_SECRET, timestamp=int(time.time()) - 3600)

        with pytest.raises(WebhookSignatureError):
            await gateway.verify_webhook(payload, header)

    @pytest.mark.asyncio
    async def test_missing_header(self):
        gateway = make_gateway(lambda request: httpx.Response(500))

        with pytest.raises(WebhookSignatureError):
            await gateway.verify_webhook(self._event(), "")


class TestTestPaymentMethod:

    @pytest.mark.asyncio
    async def test_creates_card_payment_method(self):
        captured = []
        gateway = make_gateway(
            lambda request: httpx.Response(200, json={"id": "pm_123"}),
            captured,
        )

        assert await gateway.create_test_payment_method() == "pm_123"
        form = _form(captured[0])
        assert form["type"] == "card"
        assert form["card[number]"] == "4242424242424242"
