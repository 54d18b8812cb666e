"""Read-only product catalog."""
from __future__ import annotations

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from acp_checkout.models import (
    Availability,
    Money,
    Product,
    ReturnPolicy,
    ShippingInfo,
)

DEFAULT_PRODUCTS: tuple[Product, ...] = (
    Product(
        id="prod_1",
        name="Organic Dark Chocolate Bar",
        description="Single-origin 70% cacao, vegan, no added sugar",
        price=Money(850, "USD"),
        availability=Availability.IN_STOCK,
        images=("https://example.com/chocolate.jpg",),
        shipping_info=ShippingInfo(
            regions=("US",),
            estimated_days_min=2,
            estimated_days_max=5,
        ),
        return_policy=ReturnPolicy(days=30, conditions="Unopened items only"),
    ),
)


class Catalog(ABC):
    """Abstract interface for product lookup."""

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[Product]:
        """Get a product by ID, or None if unknown."""
        pass

    @abstractmethod
    def list_products(self) -> List[Product]:
        """List every product in feed order."""
        pass

    def is_in_stock(self, product: Product) -> bool:
        return product.availability == Availability.IN_STOCK

    def count(self) -> int:
        return len(self.list_products())


class StaticCatalog(Catalog):
    """Catalog over a fixed set of products."""

    def __init__(self, products: Iterable[Product] = DEFAULT_PRODUCTS):
        self._products: Mapping[str, Product] = MappingProxyType(
            {product.id: product for product in products}
        )

    def get_product(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def list_products(self) -> List[Product]:
        return list(self._products.values())

    def count(self) -> int:
        return len(self._products)
