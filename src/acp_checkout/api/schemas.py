"""Request models for the checkout API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from acp_checkout.models import LineItemRequest


class LineItemIn(BaseModel):
    product_id: str
    quantity: int = 1

    def to_request(self) -> LineItemRequest:
        return LineItemRequest(product_id=self.product_id, quantity=self.quantity)


class CreateCheckoutRequest(BaseModel):
    # Emptiness and quantities are checked by the store so the error
    # carries the checkout error taxonomy.
    line_items: List[LineItemIn] = []
    shipping_address: Optional[Dict[str, Any]] = None
    customer_email: Optional[str] = None


class UpdateCheckoutRequest(BaseModel):
    checkout_id: str
    shipping_address: Optional[Dict[str, Any]] = None
    customer_email: Optional[str] = None


class CompleteCheckoutRequest(BaseModel):
    checkout_id: str
    shared_payment_token: str = ""


class CancelCheckoutRequest(BaseModel):
    checkout_id: str
    reason: Optional[str] = None


class RetryCheckoutRequest(BaseModel):
    checkout_id: str


class RefundCheckoutRequest(BaseModel):
    checkout_id: str
    amount: Optional[int] = None
