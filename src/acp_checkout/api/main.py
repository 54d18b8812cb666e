"""FastAPI application factory and server entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from acp_checkout import __version__
from acp_checkout.api import health, routes
from acp_checkout.api.errors import register_exception_handlers
from acp_checkout.api.middleware import RequestLoggingMiddleware
from acp_checkout.catalog import Catalog, StaticCatalog
from acp_checkout.config import CheckoutSettings, load_settings
from acp_checkout.gateways import PaymentGateway, SimulatedGateway, StripeGateway
from acp_checkout.logging_config import setup_logging
from acp_checkout.state_machine import CheckoutStateMachine
from acp_checkout.store import CheckoutStore, InMemoryCheckoutStore

logger = logging.getLogger(__name__)


def build_gateway(settings: CheckoutSettings) -> PaymentGateway:
    if settings.gateway == "stripe":
        return StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            api_base=settings.stripe_api_base,
            timeout=settings.gateway_timeout_seconds,
        )
    return SimulatedGateway(webhook_secret=settings.simulated_webhook_secret)


def create_app(
    settings: Optional[CheckoutSettings] = None,
    *,
    catalog: Optional[Catalog] = None,
    store: Optional[CheckoutStore] = None,
    gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    """
    Build the checkout API.

    Collaborators default to the static catalog, the in-memory store and the
    gateway selected by settings; pass them explicitly to substitute others.
    """
    settings = settings or load_settings()
    catalog = catalog or StaticCatalog()
    store = store or InMemoryCheckoutStore(catalog, currency=settings.currency)
    gateway = gateway or build_gateway(settings)
    state_machine = CheckoutStateMachine(store=store, catalog=catalog, gateway=gateway)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Checkout API starting (environment=%s, gateway=%s, products=%d)",
            settings.environment,
            gateway.name,
            catalog.count(),
        )
        yield
        await gateway.close()

    app = FastAPI(
        title="ACP Checkout API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        RequestLoggingMiddleware,
        exclude_paths=["/health", "/live"],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID", "Stripe-Signature"],
    )
    register_exception_handlers(app, expose_internal_details=not settings.is_production)

    deps = routes.CheckoutDependencies(state_machine=state_machine, settings=settings)
    app.dependency_overrides[routes.get_deps] = lambda: deps
    app.state.state_machine = state_machine

    app.include_router(routes.router)
    app.include_router(routes.test_router)
    app.include_router(health.router)
    return app


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    settings = load_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_json)
    app = create_app(settings)
    logger.info("ACP server running on port %d", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
