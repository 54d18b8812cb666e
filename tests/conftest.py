"""Shared fixtures for checkout tests."""
from __future__ import annotations

import httpx
import pytest

from acp_checkout.api.main import create_app
from acp_checkout.catalog import DEFAULT_PRODUCTS, StaticCatalog
from acp_checkout.config import CheckoutSettings
from acp_checkout.gateways import SimulatedGateway
from acp_checkout.models import Availability, LineItemRequest, Money, Product
from acp_checkout.state_machine import CheckoutStateMachine
from acp_checkout.store import InMemoryCheckoutStore

SHIPPING_ADDRESS = {
    "name": "Ada Lovelace",
    "line1": "1 Market St",
    "city": "San Francisco",
    "state": "CA",
    "postal_code": "94105",
    "country": "US",
}
CUSTOMER_EMAIL = "ada@example.com"

SOLD_OUT = Product(
    id="prod_sold_out",
    name="Limited Edition Truffles",
    price=Money(2400, "USD"),
    availability=Availability.OUT_OF_STOCK,
)
EURO_PRODUCT = Product(
    id="prod_eur",
    name="Hazelnut Spread",
    price=Money(600, "EUR"),
)


@pytest.fixture
def catalog():
    return StaticCatalog(DEFAULT_PRODUCTS + (SOLD_OUT, EURO_PRODUCT))


@pytest.fixture
def store(catalog):
    return InMemoryCheckoutStore(catalog)


@pytest.fixture
def gateway():
    return SimulatedGateway()


@pytest.fixture
def state_machine(store, catalog, gateway):
    return CheckoutStateMachine(store=store, catalog=catalog, gateway=gateway)


@pytest.fixture
def ready_checkout(state_machine):
    """Factory for a checkout already in pending_payment."""

    async def _make(quantity: int = 2):
        checkout = await state_machine.create_checkout(
            [LineItemRequest("prod_1", quantity)]
        )
        return await state_machine.supply_info(
            checkout.id,
            shipping_address=SHIPPING_ADDRESS,
            customer_email=CUSTOMER_EMAIL,
        )

    return _make


@pytest.fixture
def settings():
    return CheckoutSettings(_env_file=None, environment="dev", gateway="simulated")


@pytest.fixture
def app(settings, catalog, store, gateway):
    return create_app(settings, catalog=catalog, store=store, gateway=gateway)


@pytest.fixture
async def test_client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
