"""
Payment reconciliation: bridges processor outcomes to the reservation ledger.

Outcomes arrive at least once, from two directions (signed webhooks and the
client's polling verify call), in any order. Every path is idempotent:

  succeeded -> commit the hold, mark the booking paid
  failed    -> release the hold, mark the booking failed (never a paid one);
               only terminal signals count, a declined card attempt does not
  abandoned -> same as failed

The dangerous case is a payment that succeeds after its hold was released or
expired: the customer has paid for a place the ledger already gave back. The
booking is still marked paid, flagged `needs_reconciliation`, logged at
CRITICAL and counted, so someone can refund or rebook the customer.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.errors import (
    BookingNotFound,
    InvalidReservation,
    ReservationAlreadyTerminal,
    ReservationNotFound,
)
from kennel.core.logging import get_logger
from kennel.core.metrics import payment_hold_mismatches, record_payment_event
from kennel.models.reservation import ReservationStatus
from kennel.services import booking_service, reservation_service
from kennel.services.interfaces.payment_gateway import (
    CheckoutSession,
    PaymentEvent,
    PaymentGateway,
    PaymentOutcome,
)

logger = get_logger(__name__)


@dataclass
class ReconciliationResult:
    outcome: str
    booking_id: Optional[str] = None
    service_date: Optional[date] = None

    @property
    def paid(self) -> bool:
        return self.outcome in ("committed", "duplicate", "reconciliation_required")


async def start_checkout(db: AsyncSession, gateway: PaymentGateway, booking_id: str) -> CheckoutSession:
    """Open a processor checkout for a booking whose hold is still active."""
    booking = await booking_service.get_booking(db, booking_id)
    if booking.payment_status == "paid":
        raise InvalidReservation("Booking is already paid", booking_id=booking_id)

    if booking.reservation_id:
        reservation = await reservation_service.get_reservation(db, booking.reservation_id)
        if reservation.current_status != ReservationStatus.ACTIVE:
            raise ReservationAlreadyTerminal(reservation.id, reservation.status)

    metadata = {
        "bookingId": booking.id,
        "reservationId": booking.reservation_id or "",
        "service": booking.service.value,
        "date": booking.service_date.isoformat(),
    }
    # Don't hold a transaction open across the processor call
    await db.commit()

    session = await gateway.create_checkout_session(
        amount_cents=booking.amount_cents,
        currency=booking.currency,
        description=f"{booking.service.value} on {booking.service_date.isoformat()}",
        customer_email=booking.user_email,
        metadata=metadata,
    )

    await booking_service.set_payment_ref(db, booking.id, session.session_id)
    if booking.reservation_id:
        await reservation_service.attach_payment_ref(db, booking.reservation_id, session.session_id)
    await db.commit()

    logger.info(
        "checkout_session_created",
        booking_id=booking.id,
        reservation_id=booking.reservation_id,
        session_id=session.session_id,
        amount_cents=booking.amount_cents,
    )
    return session


async def _commit_hold(db: AsyncSession, event: PaymentEvent, booking_id: str, reservation_id: str) -> bool:
    """Commit the hold behind a successful payment. Returns True if it was already gone."""
    try:
        await reservation_service.commit(db, reservation_id)
        return False
    except (ReservationAlreadyTerminal, ReservationNotFound) as e:
        await db.rollback()
        payment_hold_mismatches.inc()
        logger.critical(
            "payment_reservation_mismatch",
            booking_id=booking_id,
            reservation_id=reservation_id,
            reservation_status=getattr(e, "current_status", None),
            payment_ref=event.payment_ref,
            event_type=event.event_type,
        )
        return True


async def handle_payment_event(db: AsyncSession, event: PaymentEvent) -> ReconciliationResult:
    """Apply one processor outcome. Safe to call any number of times per payment."""
    kind = event.outcome.value

    if event.outcome == PaymentOutcome.IGNORED:
        logger.debug("payment_event_ignored", event_type=event.event_type)
        return ReconciliationResult(outcome="ignored")

    booking = None
    if event.booking_id:
        try:
            booking = await booking_service.get_booking(db, event.booking_id)
        except BookingNotFound:
            pass

    if booking is None:
        log = logger.critical if event.outcome == PaymentOutcome.SUCCEEDED else logger.warning
        log(
            "payment_without_booking",
            event_type=event.event_type,
            booking_id=event.booking_id,
            payment_ref=event.payment_ref,
        )
        record_payment_event(kind, "unmatched")
        return ReconciliationResult(outcome="unmatched", booking_id=event.booking_id)

    booking_id = booking.id
    service_date = booking.service_date
    reservation_id = event.reservation_id or booking.reservation_id

    if event.outcome == PaymentOutcome.SUCCEEDED:
        if booking.payment_status == "paid":
            outcome = "duplicate"
        else:
            mismatch = False
            if reservation_id:
                mismatch = await _commit_hold(db, event, booking_id, reservation_id)
            await booking_service.mark_paid(db, booking_id, event.payment_ref, needs_reconciliation=mismatch)
            await db.commit()
            outcome = "reconciliation_required" if mismatch else "committed"
    else:
        if reservation_id:
            await reservation_service.release(db, reservation_id)
        await booking_service.mark_failed(db, booking_id)
        await db.commit()
        outcome = "released"

    record_payment_event(kind, outcome)
    logger.info(
        "payment_reconciled",
        event_type=event.event_type,
        booking_id=booking_id,
        reservation_id=reservation_id,
        outcome=outcome,
    )
    return ReconciliationResult(outcome=outcome, booking_id=booking_id, service_date=service_date)


async def verify_session(db: AsyncSession, gateway: PaymentGateway, session_id: str) -> ReconciliationResult:
    """
    Polling counterpart to the webhook. Only a paid session changes state;
    an open or unpaid one is reported as-is and left to the webhook or the
    sweeper.
    """
    event = await gateway.retrieve_session(session_id)
    if event.outcome != PaymentOutcome.SUCCEEDED:
        return ReconciliationResult(outcome="unpaid", booking_id=event.booking_id)
    return await handle_payment_event(db, event)
