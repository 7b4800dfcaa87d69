"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .payment_gateway import CheckoutSession, PaymentEvent, PaymentGateway, PaymentOutcome

__all__ = ['CheckoutSession', 'PaymentEvent', 'PaymentGateway', 'PaymentOutcome']
