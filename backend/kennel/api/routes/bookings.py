"""
Booking endpoints. A booking is created from an active hold and priced on
the server.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.db.session import get_db
from kennel.schemas.booking import BookingCreate, BookingResponse
from kennel.services import booking_service

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create the payable booking for a hold.

    Returns 409 ALREADY_TERMINAL if the hold was released or has expired.
    Calling it again for the same hold returns the existing booking.
    """
    return await booking_service.create_booking(db, data)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Booking with its current payment status."""
    return await booking_service.get_booking(db, booking_id)
