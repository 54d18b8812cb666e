"""Checkout data models."""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

DEFAULT_CURRENCY = "USD"
DEFAULT_CANCELLATION_REASON = "user_cancelled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_checkout_id() -> str:
    return f"checkout_{secrets.token_hex(16)}"


def generate_order_id() -> str:
    return f"order_{secrets.token_hex(8)}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Availability(str, Enum):
    """Product availability."""
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"


class CheckoutStatus(str, Enum):
    """Checkout lifecycle status."""
    PENDING_INFO = "pending_info"
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (CheckoutStatus.COMPLETED, CheckoutStatus.CANCELLED)


@dataclass(frozen=True)
class Money:
    """Amount in minor currency units."""
    amount: int
    currency: str = DEFAULT_CURRENCY

    def to_dict(self) -> Dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}


@dataclass(frozen=True)
class ShippingInfo:
    regions: tuple[str, ...] = ()
    estimated_days_min: int = 0
    estimated_days_max: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "regions": list(self.regions),
            "estimated_days_min": self.estimated_days_min,
            "estimated_days_max": self.estimated_days_max,
        }


@dataclass(frozen=True)
class ReturnPolicy:
    days: int
    conditions: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"days": self.days, "conditions": self.conditions}


@dataclass(frozen=True)
class Product:
    """Catalog product (read-only)."""
    id: str
    name: str
    price: Money
    description: str = ""
    availability: Availability = Availability.IN_STOCK
    images: tuple[str, ...] = ()
    shipping_info: Optional[ShippingInfo] = None
    return_policy: Optional[ReturnPolicy] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price.to_dict(),
            "availability": self.availability.value,
            "images": list(self.images),
            "shipping_info": self.shipping_info.to_dict() if self.shipping_info else None,
            "return_policy": self.return_policy.to_dict() if self.return_policy else None,
        }


@dataclass(frozen=True)
class LineItemRequest:
    """Requested product/quantity pair."""
    product_id: str
    quantity: int = 1


@dataclass(frozen=True)
class LineItem:
    """Line item with the unit price snapshotted at checkout creation."""
    product_id: str
    name: str
    quantity: int
    unit_price: Money

    @property
    def total(self) -> Money:
        return Money(self.unit_price.amount * self.quantity, self.unit_price.currency)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price.to_dict(),
            "total": self.total.to_dict(),
        }


@dataclass(frozen=True)
class PaymentError:
    """Structured payment failure reported by the gateway."""
    code: Optional[str]
    message: str
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "type": self.category}


@dataclass(frozen=True)
class Refund:
    refund_id: str
    status: str
    amount: Money
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "refund_id": self.refund_id,
            "status": self.status,
            "amount": self.amount.to_dict(),
            "created_at": _iso(self.created_at),
        }


@dataclass
class Checkout:
    """Checkout session tracking a purchase from creation to settlement."""
    id: str
    line_items: List[LineItem]
    total: Money
    status: CheckoutStatus = CheckoutStatus.PENDING_INFO
    shipping_address: Optional[Dict[str, Any]] = None
    customer_email: Optional[str] = None
    payment_method: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payment_error: Optional[PaymentError] = None
    # Definitive gateway outcomes so far; part of the gateway idempotency key
    payment_attempts: int = 0
    # Payment intents that ended in a decline; late webhooks for them are stale
    failed_payment_intent_ids: List[str] = field(default_factory=list)
    refunds: List[Refund] = field(default_factory=list)
    amount_refunded: int = 0
    completed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def has_fulfillment_info(self) -> bool:
        return bool(self.shipping_address) and bool(self.customer_email)

    @property
    def refundable_amount(self) -> int:
        return self.total.amount - self.amount_refunded

    def touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "line_items": [item.to_dict() for item in self.line_items],
            "total": self.total.to_dict(),
            "shipping_address": self.shipping_address,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "payment_intent_id": self.payment_intent_id,
            "payment_error": self.payment_error.to_dict() if self.payment_error else None,
            "payment_attempts": self.payment_attempts,
            "refunds": [r.to_dict() for r in self.refunds],
            "amount_refunded": self.amount_refunded,
            "completed_at": _iso(self.completed_at),
            "cancellation_reason": self.cancellation_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class CheckoutResult:
    """Outcome of a successful checkout completion."""
    checkout: Checkout
    payment_status: str
    order_id: str = field(default_factory=generate_order_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.checkout.to_dict(),
            "payment_status": self.payment_status,
            "order_id": self.order_id,
        }


# Gateway results. Each operation returns exactly one variant of its union;
# callers branch with isinstance.

@dataclass(frozen=True)
class PaymentAuthorized:
    transaction_id: str
    status: str
    amount_captured: int


@dataclass(frozen=True)
class PaymentDeclined:
    error: PaymentError
    # Gateway payment the decline belongs to, when one was created
    transaction_id: Optional[str] = None


AuthorizationResult = Union[PaymentAuthorized, PaymentDeclined]


@dataclass(frozen=True)
class RefundSucceeded:
    refund_id: str
    status: str
    amount: int


@dataclass(frozen=True)
class RefundDeclined:
    message: str
    code: Optional[str] = None


RefundResult = Union[RefundSucceeded, RefundDeclined]


@dataclass(frozen=True)
class GatewayEvent:
    """Verified webhook event about a payment intent."""
    event_id: str
    event_type: str
    transaction_id: Optional[str] = None
    checkout_id: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[int] = None
    error: Optional[PaymentError] = None
    payload: Dict[str, Any] = field(default_factory=dict)
