"""
Reservation (hold) endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.db.session import get_db
from kennel.models.catalog import display_slot
from kennel.models.reservation import Reservation
from kennel.schemas.reservation import ReservationCreate, ReservationReleaseResponse, ReservationResponse
from kennel.services import reservation_service
from kennel.services.cache_service import invalidate_overview_cache

router = APIRouter(prefix="/reservations", tags=["Reservations"])


def to_response(reservation: Reservation) -> ReservationResponse:
    return ReservationResponse(
        reservation_id=reservation.id,
        service=reservation.service,
        date=reservation.date,
        slot=display_slot(reservation.slot),
        status=reservation.status,
        expires_at=reservation.expires_at,
    )


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    data: ReservationCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Hold one place for a service on a date.

    The capacity check and increment are a single conditional UPDATE, so
    concurrent requests for the last place produce exactly one hold. Returns
    409 with code FULL when nothing is left. Retrying with the same
    idempotencyKey returns the original hold.
    """
    reservation = await reservation_service.reserve(db, data)
    await invalidate_overview_cache(reservation.date)
    return to_response(reservation)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: str,
    db: AsyncSession = Depends(get_db),
):
    reservation = await reservation_service.get_reservation(db, reservation_id)
    return to_response(reservation)


@router.post("/{reservation_id}/release", response_model=ReservationReleaseResponse)
async def release_reservation(
    reservation_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Give a hold back. Safe to retry: unknown or finished holds are a no-op."""
    reservation, released = await reservation_service.release(db, reservation_id)
    if reservation is None:
        return ReservationReleaseResponse(reservation_id=reservation_id, status=None, released=False)

    if released:
        await invalidate_overview_cache(reservation.date)
    return ReservationReleaseResponse(
        reservation_id=reservation.id,
        status=reservation.status,
        released=released,
    )
