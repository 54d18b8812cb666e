"""Agentic Commerce checkout endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from acp_checkout.api.schemas import (
    CancelCheckoutRequest,
    CompleteCheckoutRequest,
    CreateCheckoutRequest,
    RefundCheckoutRequest,
    RetryCheckoutRequest,
    UpdateCheckoutRequest,
)
from acp_checkout.config import CheckoutSettings
from acp_checkout.exceptions import PaymentDeclinedError
from acp_checkout.state_machine import CheckoutStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commerce", tags=["commerce"])
test_router = APIRouter(prefix="/test", tags=["test"])


@dataclass
class CheckoutDependencies:
    state_machine: CheckoutStateMachine
    settings: CheckoutSettings


def get_deps() -> CheckoutDependencies:
    raise NotImplementedError("Dependency override required")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/feed")
async def product_feed(deps: CheckoutDependencies = Depends(get_deps)):
    """Product feed for agents."""
    return {
        "products": [p.to_dict() for p in deps.state_machine.list_products()],
        "last_updated": _now_iso(),
    }


@router.post("/checkout/create", status_code=status.HTTP_201_CREATED)
async def create_checkout(
    request: CreateCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.create_checkout(
        [item.to_request() for item in request.line_items],
        shipping_address=request.shipping_address,
        customer_email=request.customer_email,
    )
    return checkout.to_dict()


@router.post("/checkout/update")
async def update_checkout(
    request: UpdateCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.supply_info(
        request.checkout_id,
        shipping_address=request.shipping_address,
        customer_email=request.customer_email,
    )
    return checkout.to_dict()


@router.post("/checkout/complete")
async def complete_checkout(
    request: CompleteCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    """
    Complete a checkout by charging the shared payment token.

    A declined payment returns 402 with the updated checkout so the agent
    can show the reason and retry.
    """
    try:
        result = await deps.state_machine.complete(
            request.checkout_id,
            request.shared_payment_token,
        )
    except PaymentDeclinedError as e:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={
                **e.checkout.to_dict(),
                "payment_status": "failed",
                "category": e.category,
                "error": e.payment_error.message,
            },
        )
    return result.to_dict()


@router.post("/checkout/retry")
async def retry_checkout(
    request: RetryCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.retry_payment(request.checkout_id)
    return checkout.to_dict()


@router.post("/checkout/cancel")
async def cancel_checkout(
    request: CancelCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.cancel(request.checkout_id, request.reason)
    return checkout.to_dict()


@router.post("/checkout/refund")
async def refund_checkout(
    request: RefundCheckoutRequest,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.refund(request.checkout_id, request.amount)
    return checkout.to_dict()


@router.get("/checkout/{checkout_id}")
async def get_checkout(
    checkout_id: str,
    deps: CheckoutDependencies = Depends(get_deps),
):
    checkout = await deps.state_machine.get_checkout(checkout_id)
    return checkout.to_dict()


@router.post("/webhooks/stripe")
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(default="", alias="Stripe-Signature"),
    deps: CheckoutDependencies = Depends(get_deps),
):
    """Verify a gateway webhook and reconcile the checkout it refers to."""
    payload = await request.body()
    event = await deps.state_machine.gateway.verify_webhook(payload, stripe_signature)
    checkout = await deps.state_machine.apply_gateway_event(event)
    return {
        "received": True,
        "event_id": event.event_id,
        "event_type": event.event_type,
        "checkout_id": checkout.id if checkout else None,
        "status": checkout.status.value if checkout else None,
    }


@test_router.post("/create-payment-method")
async def create_test_payment_method(deps: CheckoutDependencies = Depends(get_deps)):
    if deps.settings.is_production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    payment_method_id = await deps.state_machine.gateway.create_test_payment_method()
    return {
        "success": True,
        "payment_method_id": payment_method_id,
        "note": "Use this as shared_payment_token for testing",
    }
