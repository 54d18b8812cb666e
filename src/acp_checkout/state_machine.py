"""
Checkout state machine and payment settlement.

Transitions:

    pending_info ──supply_info (address + email)──▶ pending_payment
    pending_payment ──complete, authorized──▶ completed
    pending_payment ──complete, declined──▶ payment_failed
    payment_failed ──retry_payment──▶ pending_payment
    pending_info | pending_payment | payment_failed ──cancel──▶ cancelled

``completed`` and ``cancelled`` are terminal. Every mutating operation holds
a per-checkout lock, so at most one payment is in flight per checkout and a
duplicate ``complete`` observes the settled status instead of charging again.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from acp_checkout.catalog import Catalog
from acp_checkout.exceptions import (
    CheckoutException,
    CheckoutNotFoundError,
    InternalError,
    PaymentDeclinedError,
    PreconditionFailedError,
    RefundFailedError,
    ValidationError,
)
from acp_checkout.gateways.base import PaymentGateway
from acp_checkout.logging_config import set_checkout_context
from acp_checkout.models import (
    DEFAULT_CANCELLATION_REASON,
    Checkout,
    CheckoutResult,
    CheckoutStatus,
    GatewayEvent,
    LineItemRequest,
    Money,
    PaymentDeclined,
    PaymentError,
    Product,
    Refund,
    RefundDeclined,
    utcnow,
)
from acp_checkout.store import CheckoutStore

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CARD = "card"

EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"

CANCELLABLE_STATUSES = frozenset({
    CheckoutStatus.PENDING_INFO,
    CheckoutStatus.PENDING_PAYMENT,
    CheckoutStatus.PAYMENT_FAILED,
})


@dataclass
class _KeyedLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Tasks holding or waiting for the lock
    users: int = 0


class CheckoutStateMachine:
    """Validates checkout transitions and settles payments through a gateway."""

    def __init__(
        self,
        store: CheckoutStore,
        catalog: Catalog,
        gateway: PaymentGateway,
    ):
        self.store = store
        self.catalog = catalog
        self.gateway = gateway
        self._locks: Dict[str, _KeyedLock] = {}

    @asynccontextmanager
    async def _locked(self, checkout_id: str) -> AsyncIterator[None]:
        """Hold the checkout's lock; the entry is dropped once nobody waits on it."""
        entry = self._locks.get(checkout_id)
        if entry is None:
            entry = self._locks[checkout_id] = _KeyedLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[checkout_id]

    async def _load(self, checkout_id: str) -> Checkout:
        set_checkout_context(checkout_id)
        checkout = await self.store.get(checkout_id)
        if checkout is None:
            raise CheckoutNotFoundError(checkout_id)
        return checkout

    async def _save(self, checkout: Checkout) -> Checkout:
        checkout.touch()
        return await self.store.save(checkout)

    # ── Queries ─────────────────────────────────────

    def list_products(self) -> List[Product]:
        return self.catalog.list_products()

    async def get_checkout(self, checkout_id: str) -> Checkout:
        return await self._load(checkout_id)

    # ── Transitions ─────────────────────────────────

    async def create_checkout(
        self,
        line_items: Sequence[LineItemRequest],
        shipping_address: Optional[Dict[str, Any]] = None,
        customer_email: Optional[str] = None,
    ) -> Checkout:
        checkout = await self.store.create(
            line_items,
            shipping_address=shipping_address,
            customer_email=customer_email,
        )
        set_checkout_context(checkout.id)
        return checkout

    async def supply_info(
        self,
        checkout_id: str,
        shipping_address: Optional[Dict[str, Any]] = None,
        customer_email: Optional[str] = None,
    ) -> Checkout:
        """
        Merge fulfillment details into a checkout.

        Supplied fields overwrite earlier values; omitted (None) fields are
        kept. Once both shipping address and email are present a
        ``pending_info`` checkout advances to ``pending_payment``.
        """
        async with self._locked(checkout_id):
            checkout = await self._load(checkout_id)
            if checkout.status.is_terminal:
                raise PreconditionFailedError(
                    f"Checkout is {checkout.status.value} and can no longer be updated",
                    checkout_id=checkout_id,
                    status=checkout.status,
                    operation="update",
                )

            if shipping_address:
                checkout.shipping_address = shipping_address
            if customer_email:
                checkout.customer_email = customer_email

            if checkout.status == CheckoutStatus.PENDING_INFO and checkout.has_fulfillment_info:
                checkout.status = CheckoutStatus.PENDING_PAYMENT
                logger.info("Checkout %s ready for payment", checkout_id)

            return await self._save(checkout)

    async def complete(self, checkout_id: str, payment_token: str) -> CheckoutResult:
        """
        Charge the checkout total with a tokenized payment method.

        Raises:
            CheckoutNotFoundError: Unknown checkout
            PreconditionFailedError: Checkout is not ``pending_payment``
            ValidationError: Missing payment token
            PaymentDeclinedError: Gateway declined; checkout is now ``payment_failed``
            PaymentGatewayUnavailableError: No outcome; checkout is unchanged
        """
        async with self._locked(checkout_id):
            checkout = await self._load(checkout_id)
            if checkout.status != CheckoutStatus.PENDING_PAYMENT:
                raise PreconditionFailedError(
                    "Checkout not ready for payment",
                    checkout_id=checkout_id,
                    status=checkout.status,
                    operation="complete",
                )
            if not payment_token:
                raise ValidationError(
                    "A payment token is required",
                    field="shared_payment_token",
                )

            # Unchanged attempt number on retry after an unknown outcome lets
            # the gateway replay the original result instead of charging twice.
            attempt = checkout.payment_attempts + 1
            try:
                result = await self.gateway.authorize_and_capture(
                    amount=checkout.total.amount,
                    currency=checkout.total.currency,
                    token=payment_token,
                    correlation_id=checkout.id,
                    idempotency_key=f"{checkout.id}:{attempt}",
                )
            except CheckoutException:
                raise
            except Exception as e:
                logger.exception("Payment gateway %s failed unexpectedly", self.gateway.name)
                raise InternalError(
                    "Payment gateway error",
                    details={"checkout_id": checkout_id},
                ) from e

            checkout.payment_attempts = attempt

            if isinstance(result, PaymentDeclined):
                checkout.status = CheckoutStatus.PAYMENT_FAILED
                checkout.payment_error = result.error
                if result.transaction_id:
                    checkout.failed_payment_intent_ids.append(result.transaction_id)
                await self._save(checkout)
                logger.warning(
                    "Payment failed for checkout %s: %s",
                    checkout_id,
                    result.error.code or result.error.message,
                )
                raise PaymentDeclinedError(checkout, result.error)

            now = utcnow()
            checkout.status = CheckoutStatus.COMPLETED
            checkout.payment_method = PAYMENT_METHOD_CARD
            checkout.payment_intent_id = result.transaction_id
            checkout.payment_error = None
            checkout.completed_at = now
            await self._save(checkout)

            # TODO: send confirmation email and create the fulfillment order
            completion = CheckoutResult(checkout=checkout, payment_status=result.status)
            logger.info(
                "Order %s completed - Payment: %s",
                completion.order_id,
                result.transaction_id,
                extra={"order_id": completion.order_id, "payment_status": result.status},
            )
            return completion

    async def retry_payment(self, checkout_id: str) -> Checkout:
        """Return a ``payment_failed`` checkout to ``pending_payment``."""
        async with self._locked(checkout_id):
            checkout = await self._load(checkout_id)
            if checkout.status != CheckoutStatus.PAYMENT_FAILED:
                raise PreconditionFailedError(
                    "Only checkouts with a failed payment can be retried",
                    checkout_id=checkout_id,
                    status=checkout.status,
                    operation="retry",
                )
            checkout.status = CheckoutStatus.PENDING_PAYMENT
            checkout.payment_error = None
            logger.info("Checkout %s reopened for payment", checkout_id)
            return await self._save(checkout)

    async def cancel(self, checkout_id: str, reason: Optional[str] = None) -> Checkout:
        async with self._locked(checkout_id):
            checkout = await self._load(checkout_id)
            if checkout.status not in CANCELLABLE_STATUSES:
                raise PreconditionFailedError(
                    f"Checkout is {checkout.status.value} and cannot be cancelled",
                    checkout_id=checkout_id,
                    status=checkout.status,
                    operation="cancel",
                )
            checkout.status = CheckoutStatus.CANCELLED
            checkout.cancellation_reason = reason or DEFAULT_CANCELLATION_REASON
            logger.info("Checkout %s cancelled: %s", checkout_id, checkout.cancellation_reason)
            return await self._save(checkout)

    async def refund(self, checkout_id: str, amount: Optional[int] = None) -> Checkout:
        """
        Refund a completed checkout, fully when amount is None.

        The checkout stays ``completed``; refunds are recorded alongside.
        """
        async with self._locked(checkout_id):
            checkout = await self._load(checkout_id)
            if checkout.status != CheckoutStatus.COMPLETED or not checkout.payment_intent_id:
                raise PreconditionFailedError(
                    "Only completed checkouts can be refunded",
                    checkout_id=checkout_id,
                    status=checkout.status,
                    operation="refund",
                )

            remaining = checkout.refundable_amount
            amount = remaining if amount is None else amount
            if amount <= 0 or amount > remaining:
                raise ValidationError(
                    f"Refund amount must be between 1 and {remaining}",
                    field="amount",
                    details={"refundable_amount": remaining},
                )

            try:
                result = await self.gateway.refund(checkout.payment_intent_id, amount)
            except CheckoutException:
                raise
            except Exception as e:
                logger.exception("Refund through %s failed unexpectedly", self.gateway.name)
                raise InternalError(
                    "Payment gateway error",
                    details={"checkout_id": checkout_id},
                ) from e

            if isinstance(result, RefundDeclined):
                raise RefundFailedError(
                    result.message,
                    details={"checkout_id": checkout_id, "code": result.code},
                )

            checkout.refunds.append(
                Refund(
                    refund_id=result.refund_id,
                    status=result.status,
                    amount=Money(result.amount, checkout.total.currency),
                )
            )
            checkout.amount_refunded += result.amount
            logger.info(
                "Refunded %d %s on checkout %s (%s)",
                result.amount,
                checkout.total.currency,
                checkout_id,
                result.refund_id,
            )
            return await self._save(checkout)

    async def apply_gateway_event(self, event: GatewayEvent) -> Optional[Checkout]:
        """
        Reconcile a verified gateway event with checkout state.

        Only checkouts still awaiting payment are moved; events for settled,
        cancelled or unknown checkouts, and failures of payment intents the
        checkout already recorded as declined, are ignored.
        """
        if event.event_type not in (EVENT_PAYMENT_SUCCEEDED, EVENT_PAYMENT_FAILED):
            logger.debug("Ignoring gateway event %s (%s)", event.event_id, event.event_type)
            return None
        if not event.checkout_id:
            logger.info("Gateway event %s has no checkout reference", event.event_id)
            return None
        if event.event_type == EVENT_PAYMENT_SUCCEEDED and not event.transaction_id:
            logger.warning("Gateway event %s has no payment intent", event.event_id)
            return None

        async with self._locked(event.checkout_id):
            set_checkout_context(event.checkout_id)
            checkout = await self.store.get(event.checkout_id)
            if checkout is None:
                logger.warning(
                    "Gateway event %s references unknown checkout %s",
                    event.event_id,
                    event.checkout_id,
                )
                return None
            if checkout.status != CheckoutStatus.PENDING_PAYMENT:
                logger.info(
                    "Gateway event %s ignored, checkout %s is %s",
                    event.event_id,
                    checkout.id,
                    checkout.status.value,
                )
                return checkout
            if (
                event.event_type == EVENT_PAYMENT_FAILED
                and event.transaction_id in checkout.failed_payment_intent_ids
            ):
                logger.info(
                    "Gateway event %s ignored, payment %s already declined",
                    event.event_id,
                    event.transaction_id,
                )
                return checkout

            checkout.payment_attempts += 1
            if event.event_type == EVENT_PAYMENT_SUCCEEDED:
                checkout.status = CheckoutStatus.COMPLETED
                checkout.payment_method = PAYMENT_METHOD_CARD
                checkout.payment_intent_id = event.transaction_id
                checkout.completed_at = utcnow()
            else:
                checkout.status = CheckoutStatus.PAYMENT_FAILED
                checkout.payment_error = event.error or PaymentError(None, "Payment failed")
                if event.transaction_id:
                    checkout.failed_payment_intent_ids.append(event.transaction_id)

            logger.info(
                "Checkout %s reconciled to %s from gateway event %s",
                checkout.id,
                checkout.status.value,
                event.event_id,
            )
            return await self._save(checkout)
