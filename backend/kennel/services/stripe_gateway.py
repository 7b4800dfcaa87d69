"""
Stripe implementation of the payment gateway.

Checkout sessions carry {bookingId, reservationId, service, date} in their
metadata, copied onto the payment intent as well, so whichever event type
Stripe delivers can be traced back to the booking and its hold.

The stripe client is synchronous; calls run in a worker thread so they do
not block the event loop.
"""

import asyncio
import json
from typing import Optional

import stripe

from kennel.core.config import get_settings
from kennel.core.errors import PaymentGatewayError, PaymentVerificationError
from kennel.core.logging import get_logger
from kennel.services.interfaces.payment_gateway import (
    CheckoutSession,
    PaymentEvent,
    PaymentGateway,
    PaymentOutcome,
)

logger = get_logger(__name__)

SESSION_EVENTS = {
    "checkout.session.async_payment_succeeded": PaymentOutcome.SUCCEEDED,
    "checkout.session.async_payment_failed": PaymentOutcome.FAILED,
    "checkout.session.expired": PaymentOutcome.ABANDONED,
}

PAYMENT_INTENT_EVENTS = {
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    # A declined card leaves the session open for another attempt
    "payment_intent.payment_failed": PaymentOutcome.IGNORED,
}


def event_from_object(event_type: str, obj: dict) -> PaymentEvent:
    """Map a Stripe event type and its data object onto a PaymentEvent."""
    metadata = obj.get("metadata") or {}

    if event_type == "checkout.session.completed":
        # Delayed payment methods complete the session before the money arrives
        paid = obj.get("payment_status") == "paid"
        outcome = PaymentOutcome.SUCCEEDED if paid else PaymentOutcome.IGNORED
    elif event_type in SESSION_EVENTS:
        outcome = SESSION_EVENTS[event_type]
    elif event_type in PAYMENT_INTENT_EVENTS:
        outcome = PAYMENT_INTENT_EVENTS[event_type]
    else:
        outcome = PaymentOutcome.IGNORED

    return PaymentEvent(
        outcome=outcome,
        event_type=event_type,
        payment_ref=obj.get("id"),
        booking_id=metadata.get("bookingId"),
        reservation_id=metadata.get("reservationId"),
        metadata=dict(metadata),
    )


class StripeGateway(PaymentGateway):

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    async def create_checkout_session(self, amount_cents, currency, description, customer_email, metadata):
        settings = get_settings()
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.api_key,
                mode="payment",
                customer_email=customer_email,
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": currency,
                            "unit_amount": amount_cents,
                            "product_data": {"name": description},
                        },
                    }
                ],
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                success_url=settings.CHECKOUT_SUCCESS_URL,
                cancel_url=settings.CHECKOUT_CANCEL_URL,
            )
        except stripe.StripeError as e:
            logger.error("stripe_checkout_failed", error=str(e), booking_id=metadata.get("bookingId"))
            raise PaymentGatewayError()

        return CheckoutSession(session_id=session.id, url=session.url)

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> PaymentEvent:
        if not signature:
            raise PaymentVerificationError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError:
            logger.warning("stripe_webhook_bad_signature")
            raise PaymentVerificationError("Invalid webhook signature")
        except ValueError:
            raise PaymentVerificationError("Invalid webhook payload")

        event = json.loads(payload)
        return event_from_object(event["type"], event["data"]["object"])

    async def retrieve_session(self, session_id: str) -> PaymentEvent:
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.retrieve, session_id, api_key=self.api_key
            )
        except stripe.InvalidRequestError:
            raise PaymentVerificationError("Unknown checkout session", session_id=session_id)
        except stripe.StripeError as e:
            logger.error("stripe_session_lookup_failed", session_id=session_id, error=str(e))
            raise PaymentGatewayError()

        return event_from_object("checkout.session.completed", session.to_dict())
