"""Tests for checkout creation and storage."""
from __future__ import annotations

import pytest

from acp_checkout.catalog import StaticCatalog
from acp_checkout.exceptions import (
    InvalidLineItems,
    ProductNotFound,
    ProductUnavailable,
)
from acp_checkout.models import CheckoutStatus, LineItemRequest, Money, Product
from acp_checkout.store import InMemoryCheckoutStore


class TestCreateCheckout:
    """Line item validation and total computation."""

    @pytest.mark.asyncio
    async def test_total_is_sum_of_line_items(self, store):
        checkout = await store.create([LineItemRequest("prod_1", 3)])

        assert checkout.status == CheckoutStatus.PENDING_INFO
        assert checkout.id.startswith("checkout_")
        assert checkout.total == Money(2550, "USD")
        assert len(checkout.line_items) == 1
        item = checkout.line_items[0]
        assert item.name == "Organic Dark Chocolate Bar"
        assert item.unit_price == Money(850, "USD")
        assert item.total == Money(2550, "USD")

    @pytest.mark.asyncio
    async def test_multiple_line_items(self):
        catalog = StaticCatalog([
            Product(id="a", name="A", price=Money(100)),
            Product(id="b", name="B", price=Money(250)),
        ])
        store = InMemoryCheckoutStore(catalog)

        checkout = await store.create([LineItemRequest("a", 2), LineItemRequest("b")])

        assert checkout.total.amount == 450
        assert [i.product_id for i in checkout.line_items] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_info_at_creation_still_pending_info(self, store):
        """Supplying both fields up front does not skip the update step."""
        checkout = await store.create(
            [LineItemRequest("prod_1")],
            shipping_address={"line1": "1 Market St"},
            customer_email="ada@example.com",
        )

        assert checkout.status == CheckoutStatus.PENDING_INFO
        assert checkout.customer_email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_empty_line_items_rejected(self, store):
        with pytest.raises(InvalidLineItems) as exc_info:
            await store.create([])

        assert exc_info.value.message == "No line items provided"
        assert exc_info.value.http_status == 400
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_non_positive_quantity_rejected(self, store):
        with pytest.raises(InvalidLineItems):
            await store.create([LineItemRequest("prod_1", 0)])
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_unknown_product_rejected(self, store):
        with pytest.raises(ProductNotFound) as exc_info:
            await store.create([LineItemRequest("prod_1"), LineItemRequest("prod_missing")])

        assert exc_info.value.message == "Product prod_missing not found"
        assert exc_info.value.category == "validation"
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_out_of_stock_product_rejected(self, store):
        with pytest.raises(ProductUnavailable) as exc_info:
            await store.create([LineItemRequest("prod_sold_out")])

        assert exc_info.value.message == "Product prod_sold_out is out of stock"
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_foreign_currency_product_rejected(self, store):
        with pytest.raises(InvalidLineItems):
            await store.create([LineItemRequest("prod_eur")])


class TestInMemoryCheckoutStore:
    """Storage semantics of the in-memory store."""

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get("checkout_missing") is None

    @pytest.mark.asyncio
    async def test_returned_checkout_is_a_copy(self, store):
        checkout = await store.create([LineItemRequest("prod_1")])

        checkout.status = CheckoutStatus.CANCELLED
        stored = await store.get(checkout.id)

        assert stored.status == CheckoutStatus.PENDING_INFO

    @pytest.mark.asyncio
    async def test_save_persists_changes(self, store):
        checkout = await store.create([LineItemRequest("prod_1")])

        checkout.customer_email = "ada@example.com"
        await store.save(checkout)

        assert (await store.get(checkout.id)).customer_email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_save_unknown_checkout_raises(self, store):
        checkout = await store.create([LineItemRequest("prod_1")])
        checkout.id = "checkout_other"

        with pytest.raises(KeyError):
            await store.save(checkout)

    @pytest.mark.asyncio
    async def test_duplicate_insert_raises(self, store):
        checkout = await store.create([LineItemRequest("prod_1")])

        with pytest.raises(ValueError):
            await store.insert(checkout)

    @pytest.mark.asyncio
    async def test_price_snapshot_survives_catalog_change(self, store):
        """Line items keep the price captured at creation."""
        checkout = await store.create([LineItemRequest("prod_1", 2)])

        store.catalog = StaticCatalog([Product(id="prod_1", name="Bar", price=Money(999))])
        stored = await store.get(checkout.id)

        assert stored.line_items[0].unit_price.amount == 850
        assert stored.total.amount == 1700
