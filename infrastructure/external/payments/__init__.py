"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.donation.entity import PaymentMethod


logger = get_logger(__name__)


def get_payment_gateway(provider: str) -> PaymentGateway:
    name = provider.lower()
    if name == "stripe":
        from .stripe_client import StripeClient
        return StripeClient(payment_settings)
    if name == "paypal":
        from .paypal_client import PayPalClient
        return PayPalClient(payment_settings)
    raise ValueError(f"Unsupported payment provider: {name}")


def build_gateways() -> dict[PaymentMethod, PaymentGateway]:
    """All configured processors keyed by method; unconfigured ones are skipped."""
    gateways: dict[PaymentMethod, PaymentGateway] = {}
    for method in PaymentMethod:
        try:
            gateways[method] = get_payment_gateway(method.value)
        except RuntimeError as exc:
            logger.warning("payment_gateway_not_configured", processor=method.value, reason=str(exc))
    return gateways
