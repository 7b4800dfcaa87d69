from kennel.models.catalog import ALL_DAY, ServiceType
from kennel.models.capacity import CapacityRecord, CapacityDefault, CapacityOverride
from kennel.models.reservation import Reservation, ReservationStatus
from kennel.models.booking import Booking

__all__ = [
    "ALL_DAY", "ServiceType",
    "CapacityRecord", "CapacityDefault", "CapacityOverride",
    "Reservation", "ReservationStatus",
    "Booking",
]
