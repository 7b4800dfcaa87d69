"""
Payment gateway factory.
Configures which payment processor integration to use.
"""

from typing import Optional

from kennel.services.interfaces.payment_gateway import PaymentGateway
from kennel.services.stripe_gateway import StripeGateway


def build_payment_gateway() -> PaymentGateway:
    """
    Build the configured gateway.

    Stripe is the only production processor; tests replace the gateway by
    overriding the get_payment_gateway dependency.
    """
    return StripeGateway()


# Singleton instance
_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get payment gateway singleton (FastAPI dependency)."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway
