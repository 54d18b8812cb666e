"""Tests for settings resolution."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from acp_checkout.api.main import build_gateway
from acp_checkout.config import CheckoutSettings
from acp_checkout.gateways import SimulatedGateway, StripeGateway


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STRIPE_SECRET_KEY",
        "ACP_STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "ACP_STRIPE_WEBHOOK_SECRET",
        "ACP_GATEWAY",
        "ACP_ENVIRONMENT",
        "ACP_CURRENCY",
        "PORT",
        "ACP_PORT",
    ):
        monkeypatch.delenv(name, raising=False)


class TestCheckoutSettings:

    def test_defaults(self):
        settings = CheckoutSettings(_env_file=None)

        assert settings.environment == "dev"
        assert settings.currency == "USD"
        assert settings.gateway == "simulated"
        assert settings.port == 3000
        assert settings.stripe_configured is False
        assert settings.allowed_origins == ["*"]

    def test_stripe_key_from_unprefixed_env(self, monkeypatch):
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_123")

        settings = CheckoutSettings(_env_file=None)

        assert settings.gateway == "stripe"
        assert settings.stripe_secret_key == "sk_test_123"
        assert settings.stripe_webhook_secret == "whsec_123"
        assert settings.stripe_configured is True

    def test_port_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")

        assert CheckoutSettings(_env_file=None).port == 8080

    def test_origins_parsed_from_comma_list(self, monkeypatch):
        monkeypatch.setenv("ACP_ALLOWED_ORIGINS", "https://a.example, https://b.example")

        settings = CheckoutSettings(_env_file=None)

        assert settings.allowed_origins == ["https://a.example", "https://b.example"]

    def test_currency_normalized(self):
        assert CheckoutSettings(_env_file=None, currency="eur").currency == "EUR"

    def test_invalid_currency(self):
        with pytest.raises(ValidationError):
            CheckoutSettings(_env_file=None, currency="dollars")

    def test_stripe_gateway_requires_key(self):
        with pytest.raises(ValidationError):
            CheckoutSettings(_env_file=None, gateway="stripe")

    def test_production_rejects_simulated_gateway(self):
        with pytest.raises(ValidationError):
            CheckoutSettings(_env_file=None, environment="prod")


class TestBuildGateway:

    def test_simulated(self):
        gateway = build_gateway(CheckoutSettings(_env_file=None, simulated_webhook_secret="whsec_x"))

        assert isinstance(gateway, SimulatedGateway)
        assert gateway.webhook_secret == "whsec_x"

    @pytest.mark.asyncio
    async def test_stripe(self):
        settings = CheckoutSettings(_env_file=None, stripe_secret_key="sk_test_123")

        gateway = build_gateway(settings)

        assert isinstance(gateway, StripeGateway)
        assert gateway.configured
        await gateway.close()
