"""Payment gateway implementations."""
from acp_checkout.gateways.base import PaymentGateway, sign_payload, verify_signature_header
from acp_checkout.gateways.simulated import SimulatedGateway
from acp_checkout.gateways.stripe import StripeGateway

__all__ = [
    "PaymentGateway",
    "SimulatedGateway",
    "StripeGateway",
    "sign_payload",
    "verify_signature_header",
]
