"""
Pydantic schemas for booking, pricing and payment request/response validation.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from kennel.schemas.base import CamelModel, ServiceField


class PriceQuoteRequest(CamelModel):
    service: ServiceField
    dog_count: int = Field(default=1, ge=1, le=2)
    checkin: Optional[datetime] = None
    checkout: Optional[datetime] = None
    checkout_time_label: Optional[str] = Field(None, max_length=32)


class PriceQuoteResponse(CamelModel):
    total: int
    model: str
    nights: Optional[int] = None
    per_night: Optional[int] = None
    pm_surcharge: Optional[int] = None


class BookingCreate(CamelModel):
    reservation_id: str
    dog_count: int = Field(default=1, ge=1, le=2)
    checkin: Optional[datetime] = None
    checkout: Optional[datetime] = None
    checkout_time_label: Optional[str] = Field(None, max_length=32)


class BookingResponse(CamelModel):
    id: str
    reservation_id: Optional[str]
    service: ServiceField
    user_email: str
    dog_id: Optional[str]
    dog_count: int
    service_date: date
    checkout_time_label: Optional[str]
    amount_cents: int
    currency: str
    pricing_model: str
    status: str
    payment_status: str
    needs_reconciliation: bool
    created_at: datetime


class CheckoutRequest(CamelModel):
    booking_id: str


class CheckoutResponse(CamelModel):
    session_id: str
    url: Optional[str]


class PaymentVerifyResponse(CamelModel):
    paid: bool
    session_id: str
    booking_id: Optional[str]
    outcome: str


class WebhookAck(CamelModel):
    received: bool = True
    outcome: str
