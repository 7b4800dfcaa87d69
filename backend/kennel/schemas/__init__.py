from kennel.schemas.reservation import ReservationCreate, ReservationResponse, ReservationReleaseResponse
from kennel.schemas.availability import AvailabilityResponse, CapacityOverview, CapacityDefaults, CapacityOverrideIn
from kennel.schemas.booking import BookingCreate, BookingResponse, PriceQuoteRequest, PriceQuoteResponse

__all__ = [
    "ReservationCreate", "ReservationResponse", "ReservationReleaseResponse",
    "AvailabilityResponse", "CapacityOverview", "CapacityDefaults", "CapacityOverrideIn",
    "BookingCreate", "BookingResponse", "PriceQuoteRequest", "PriceQuoteResponse",
]
