"""
Booking service: turns an active hold into a priced, payable booking.

The booking is priced on the server from the hold's service and the stay
details; clients never send an amount. The pricing engine works in whole
euros and the amount is converted to minor units exactly once, here, before
it is stored. Everything downstream (checkout sessions, reconciliation)
reads `amount_cents` as-is.

One booking per hold: the unique `reservation_id` column means a retried
create call returns the booking that already exists.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.config import get_settings
from kennel.core.errors import BookingNotFound, InvalidReservation, ReservationAlreadyTerminal
from kennel.core.logging import get_logger
from kennel.models.booking import Booking
from kennel.models.reservation import ReservationStatus
from kennel.schemas.booking import BookingCreate
from kennel.services import pricing
from kennel.services.reservation_service import get_reservation
from kennel.utils.time import as_utc, facility_date, utcnow

logger = get_logger(__name__)


async def get_booking(db: AsyncSession, booking_id: str) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound(booking_id=booking_id)
    return booking


async def get_booking_for_reservation(db: AsyncSession, reservation_id: str) -> Optional[Booking]:
    result = await db.execute(select(Booking).where(Booking.reservation_id == reservation_id))
    return result.scalar_one_or_none()


def _check_stay(data: BookingCreate) -> None:
    """Boarding is priced per night, so the stay needs both ends and at least one night."""
    if data.checkin is None or data.checkout is None:
        raise InvalidReservation("Boarding bookings need checkin and checkout", reservation_id=data.reservation_id)
    if facility_date(data.checkout) <= facility_date(data.checkin):
        raise InvalidReservation(
            "Checkout must be on a later day than checkin",
            reservation_id=data.reservation_id,
            checkin=data.checkin.isoformat(),
            checkout=data.checkout.isoformat(),
        )


async def create_booking(db: AsyncSession, data: BookingCreate) -> Booking:
    """Create the booking for a hold, priced server-side."""
    reservation = await get_reservation(db, data.reservation_id)

    existing = await get_booking_for_reservation(db, reservation.id)
    if existing is not None:
        logger.info("booking_already_exists", booking_id=existing.id, reservation_id=reservation.id)
        return existing

    if reservation.current_status != ReservationStatus.ACTIVE:
        raise ReservationAlreadyTerminal(reservation.id, reservation.status)
    if as_utc(reservation.expires_at) <= utcnow():
        raise ReservationAlreadyTerminal(reservation.id, ReservationStatus.EXPIRED.value)

    if reservation.service.is_boarding:
        _check_stay(data)

    quote = pricing.quote(
        reservation.service,
        dog_count=data.dog_count,
        checkin=data.checkin or reservation.date,
        checkout=data.checkout,
        checkout_time_label=data.checkout_time_label,
    )

    booking = Booking(
        reservation_id=reservation.id,
        service=reservation.service,
        user_email=reservation.user_email,
        dog_id=reservation.dog_id,
        dog_count=data.dog_count,
        service_date=reservation.date,
        checkin_at=data.checkin,
        checkout_at=data.checkout,
        checkout_time_label=data.checkout_time_label,
        amount_cents=pricing.to_minor_units(quote.total),
        currency=get_settings().CURRENCY,
        pricing_model=quote.model,
    )
    db.add(booking)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent retry created it first
        await db.rollback()
        existing = await get_booking_for_reservation(db, reservation.id)
        if existing is None:
            raise
        return existing

    await db.refresh(booking)
    logger.info(
        "booking_created",
        booking_id=booking.id,
        reservation_id=reservation.id,
        service=reservation.service.value,
        amount_cents=booking.amount_cents,
        nights=quote.nights,
    )
    return booking


async def set_payment_ref(db: AsyncSession, booking_id: str, payment_ref: str) -> None:
    """Runs in the caller's transaction."""
    await db.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(payment_ref=payment_ref)
        .execution_options(synchronize_session=False)
    )


async def mark_paid(db: AsyncSession, booking_id: str, payment_ref: Optional[str],
                    needs_reconciliation: bool = False) -> bool:
    """
    Mark a booking paid and confirmed. Returns False if it already was, so a
    duplicate webhook changes nothing. Runs in the caller's transaction.
    """
    values = {"payment_status": "paid", "status": "confirmed"}
    if payment_ref:
        values["payment_ref"] = payment_ref
    if needs_reconciliation:
        values["needs_reconciliation"] = True

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.payment_status != "paid")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0 and needs_reconciliation:
        # Already paid; still surface the mismatch
        await db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(needs_reconciliation=True)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount == 1


async def mark_failed(db: AsyncSession, booking_id: str) -> bool:
    """Record a failed or abandoned payment. A paid booking is never downgraded."""
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.payment_status != "paid")
        .values(payment_status="failed")
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
