"""
ACP Checkout - Agentic Commerce checkout sessions and payment settlement.

An external agent browses the product feed, creates a checkout, supplies
shipping and contact details, and completes payment with a tokenized
payment method. Refunds, cancellation and gateway webhooks are supported.
"""

__version__ = "0.1.0"

from acp_checkout.catalog import Catalog, StaticCatalog, DEFAULT_PRODUCTS
from acp_checkout.config import CheckoutSettings, load_settings
from acp_checkout.exceptions import (
    CheckoutException,
    ValidationError,
    InvalidLineItems,
    ProductNotFound,
    ProductUnavailable,
    WebhookSignatureError,
    CheckoutNotFoundError,
    PreconditionFailedError,
    PaymentDeclinedError,
    InternalError,
    PaymentGatewayUnavailableError,
    RefundFailedError,
)
from acp_checkout.gateways import PaymentGateway, SimulatedGateway, StripeGateway
from acp_checkout.models import (
    Availability,
    Checkout,
    CheckoutResult,
    CheckoutStatus,
    GatewayEvent,
    LineItem,
    LineItemRequest,
    Money,
    PaymentAuthorized,
    PaymentDeclined,
    PaymentError,
    Product,
    Refund,
    RefundDeclined,
    RefundSucceeded,
)
from acp_checkout.state_machine import CheckoutStateMachine
from acp_checkout.store import CheckoutStore, InMemoryCheckoutStore

__all__ = [
    # State machine & storage
    "CheckoutStateMachine",
    "CheckoutStore",
    "InMemoryCheckoutStore",
    "Catalog",
    "StaticCatalog",
    "DEFAULT_PRODUCTS",
    # Gateways
    "PaymentGateway",
    "SimulatedGateway",
    "StripeGateway",
    # Models
    "Availability",
    "Checkout",
    "CheckoutResult",
    "CheckoutStatus",
    "GatewayEvent",
    "LineItem",
    "LineItemRequest",
    "Money",
    "PaymentAuthorized",
    "PaymentDeclined",
    "PaymentError",
    "Product",
    "Refund",
    "RefundDeclined",
    "RefundSucceeded",
    # Configuration
    "CheckoutSettings",
    "load_settings",
    # Errors
    "CheckoutException",
    "ValidationError",
    "InvalidLineItems",
    "ProductNotFound",
    "ProductUnavailable",
    "WebhookSignatureError",
    "CheckoutNotFoundError",
    "PreconditionFailedError",
    "PaymentDeclinedError",
    "InternalError",
    "PaymentGatewayUnavailableError",
    "RefundFailedError",
]
