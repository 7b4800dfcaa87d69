"""
Pydantic schemas for reservation (hold) requests and responses.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import EmailStr, Field

from kennel.schemas.base import CamelModel, ServiceField


class ReservationCreate(CamelModel):
    service: ServiceField
    date: date
    slot: Optional[str] = Field(None, max_length=32)
    user_email: EmailStr
    dog_id: Optional[str] = Field(None, max_length=36)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=64)


class ReservationResponse(CamelModel):
    reservation_id: str
    service: ServiceField
    date: date
    slot: Optional[str]
    status: str
    expires_at: datetime


class ReservationReleaseResponse(CamelModel):
    reservation_id: str
    status: Optional[str]
    released: bool


class SweepResponse(CamelModel):
    expired: int
