"""Configuration surface for the checkout service."""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode


class CheckoutSettings(BaseSettings):
    """Checkout service configuration."""

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # Single settlement currency for every checkout
    currency: str = "USD"

    # Payment gateway; resolved to "stripe" when a secret key is present
    gateway: Optional[Literal["simulated", "stripe"]] = None
    stripe_secret_key: str = Field(
        default="",
        validation_alias=AliasChoices("ACP_STRIPE_SECRET_KEY", "STRIPE_SECRET_KEY"),
    )
    stripe_webhook_secret: str = Field(
        default="",
        validation_alias=AliasChoices("ACP_STRIPE_WEBHOOK_SECRET", "STRIPE_WEBHOOK_SECRET"),
    )
    stripe_api_base: str = "https://api.stripe.com/v1"
    gateway_timeout_seconds: float = 30.0
    simulated_webhook_secret: str = "whsec_simulated"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("ACP_PORT", "PORT"))

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # CORS - allowed origins for API
    allowed_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])

    class Config:
        env_prefix = "ACP_"
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Parse comma-separated origins from env var."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"currency must be an ISO 4217 code, got '{v}'")
        return v

    @model_validator(mode="after")
    def resolve_gateway(self) -> "CheckoutSettings":
        if self.gateway is None:
            self.gateway = "stripe" if self.stripe_secret_key else "simulated"
        if self.gateway == "stripe" and not self.stripe_secret_key:
            raise ValueError("ACP_GATEWAY=stripe requires STRIPE_SECRET_KEY")
        if self.environment == "prod" and self.gateway == "simulated":
            raise ValueError("The simulated gateway cannot be used in production")
        return self

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def is_production(self) -> bool:
        return self.environment == "prod"


@lru_cache
def load_settings() -> CheckoutSettings:
    return CheckoutSettings()
