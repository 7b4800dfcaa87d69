"""
Stateless price quotes for the booking form.
"""

from fastapi import APIRouter

from kennel.schemas.booking import PriceQuoteRequest, PriceQuoteResponse
from kennel.services import pricing

router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/quote", response_model=PriceQuoteResponse)
async def quote_price(data: PriceQuoteRequest):
    """Same calculation the booking service uses to price a booking."""
    quote = pricing.quote(
        data.service,
        dog_count=data.dog_count,
        checkin=data.checkin,
        checkout=data.checkout,
        checkout_time_label=data.checkout_time_label,
    )
    return PriceQuoteResponse(
        total=quote.total,
        model=quote.model,
        nights=quote.nights,
        per_night=quote.per_night,
        pm_surcharge=quote.pm_surcharge,
    )
