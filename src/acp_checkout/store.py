"""
Checkout storage.

The store owns the mapping from checkout ID to Checkout and validates new
checkouts against the catalog. Only the state machine mutates stored
checkouts, through ``save``.
"""
from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from acp_checkout.catalog import Catalog
from acp_checkout.exceptions import (
    InvalidLineItems,
    ProductNotFound,
    ProductUnavailable,
)
from acp_checkout.models import (
    DEFAULT_CURRENCY,
    Checkout,
    CheckoutStatus,
    LineItem,
    LineItemRequest,
    Money,
    generate_checkout_id,
)

logger = logging.getLogger(__name__)


class CheckoutStore(ABC):
    """Abstract interface for checkout storage."""

    def __init__(self, catalog: Catalog, currency: str = DEFAULT_CURRENCY):
        self.catalog = catalog
        self.currency = currency

    async def create(
        self,
        line_items: Sequence[LineItemRequest],
        shipping_address: Optional[Dict[str, Any]] = None,
        customer_email: Optional[str] = None,
    ) -> Checkout:
        """
        Validate line items against the catalog and store a new checkout.

        Raises:
            InvalidLineItems: If the list is empty or a quantity is not positive
            ProductNotFound: If a product ID is unknown
            ProductUnavailable: If a product is out of stock
        """
        items = self._build_line_items(line_items)
        total = Money(sum(item.total.amount for item in items), self.currency)

        checkout = Checkout(
            id=generate_checkout_id(),
            status=CheckoutStatus.PENDING_INFO,
            line_items=items,
            total=total,
            shipping_address=shipping_address or None,
            customer_email=customer_email or None,
        )
        await self.insert(checkout)

        logger.info(
            "Created checkout %s with %d line item(s), total %d %s",
            checkout.id,
            len(items),
            total.amount,
            total.currency,
        )
        return checkout

    def _build_line_items(self, requests: Sequence[LineItemRequest]) -> List[LineItem]:
        if not requests:
            raise InvalidLineItems()

        items: List[LineItem] = []
        for request in requests:
            if request.quantity < 1:
                raise InvalidLineItems(
                    f"Quantity for product {request.product_id} must be positive",
                    details={"product_id": request.product_id},
                )

            product = self.catalog.get_product(request.product_id)
            if product is None:
                raise ProductNotFound(request.product_id)
            if not self.catalog.is_in_stock(product):
                raise ProductUnavailable(request.product_id)
            if product.price.currency != self.currency:
                raise InvalidLineItems(
                    f"Product {product.id} is priced in {product.price.currency}, "
                    f"checkout settles in {self.currency}",
                    details={"product_id": product.id},
                )

            items.append(
                LineItem(
                    product_id=product.id,
                    name=product.name,
                    quantity=request.quantity,
                    unit_price=product.price,
                )
            )
        return items

    @abstractmethod
    async def get(self, checkout_id: str) -> Optional[Checkout]:
        """Get a checkout by ID, or None if unknown."""
        pass

    @abstractmethod
    async def insert(self, checkout: Checkout) -> Checkout:
        """Store a new checkout."""
        pass

    @abstractmethod
    async def save(self, checkout: Checkout) -> Checkout:
        """Persist changes to an existing checkout."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored checkouts."""
        pass


class InMemoryCheckoutStore(CheckoutStore):
    """
    In-memory checkout store for development and testing.

    Checkouts are copied on the way in and out, so a caller holding a
    returned Checkout cannot change stored state without calling ``save``.

    Note: This store is not suitable for production use. State is lost on
    restart and is not shared between processes.
    """

    def __init__(self, catalog: Catalog, currency: str = DEFAULT_CURRENCY):
        super().__init__(catalog, currency)
        self._checkouts: Dict[str, Checkout] = {}

    async def get(self, checkout_id: str) -> Optional[Checkout]:
        checkout = self._checkouts.get(checkout_id)
        return copy.deepcopy(checkout) if checkout else None

    async def insert(self, checkout: Checkout) -> Checkout:
        if checkout.id in self._checkouts:
            raise ValueError(f"Checkout {checkout.id} already exists")
        self._checkouts[checkout.id] = copy.deepcopy(checkout)
        return checkout

    async def save(self, checkout: Checkout) -> Checkout:
        if checkout.id not in self._checkouts:
            raise KeyError(checkout.id)
        self._checkouts[checkout.id] = copy.deepcopy(checkout)
        return checkout

    async def count(self) -> int:
        return len(self._checkouts)
