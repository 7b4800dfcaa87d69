"""
Payment gateway interface.
Keeps the reconciliation logic independent of the payment processor.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


class PaymentOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentEvent:
    """A processor notification reduced to what reconciliation needs."""

    outcome: PaymentOutcome
    event_type: str
    payment_ref: Optional[str] = None
    booking_id: Optional[str] = None
    reservation_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: Optional[str]


class PaymentGateway(ABC):
    """
    Interface for payment processors.

    Implementations:
    - StripeGateway: Stripe Checkout + signed webhooks
    - Tests substitute an in-memory fake
    """

    @abstractmethod
    async def create_checkout_session(
        self,
        amount_cents: int,
        currency: str,
        description: str,
        customer_email: str,
        metadata: dict,
    ) -> CheckoutSession:
        """
        Create a hosted checkout for a booking.

        Args:
            amount_cents: Amount in the currency's minor unit
            metadata: Copied onto the session and its payment intent so every
                      webhook carries the booking and reservation ids
        """
        pass

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        """
        Verify and decode a webhook delivery.

        Raises:
            PaymentVerificationError: bad signature or malformed payload
        """
        pass

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> PaymentEvent:
        """Look up a checkout session's current state (polling verify)."""
        pass
