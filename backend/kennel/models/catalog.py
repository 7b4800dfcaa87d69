"""
The fixed catalogue of bookable services.

Each service owns an independent daily capacity pool. ``resource_key`` is the
name used by the capacity overview; ``ALIASES`` maps the spellings clients
send onto the canonical value stored in the database.
"""

import enum
from typing import Optional

# Stored in place of a NULL slot so (service, date, slot) stays unique
ALL_DAY = "ALL_DAY"


class ServiceType(str, enum.Enum):
    DAYCARE = "Daycare"
    BOARDING_SMALL = "Boarding Small"
    BOARDING_LARGE = "Boarding Large"
    TRIAL = "Trial Day"

    @property
    def resource_key(self) -> str:
        return self.value.lower().replace(" ", ":")

    @property
    def is_boarding(self) -> bool:
        return self in (ServiceType.BOARDING_SMALL, ServiceType.BOARDING_LARGE)

    @classmethod
    def parse(cls, raw: "str | ServiceType") -> "ServiceType":
        if isinstance(raw, ServiceType):
            return raw
        key = str(raw).strip().lower()
        try:
            return ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown service: {raw!r}") from None


ALIASES = {
    "daycare": ServiceType.DAYCARE,
    "boarding": ServiceType.BOARDING_SMALL,  # legacy single boarding pool
    "boarding small": ServiceType.BOARDING_SMALL,
    "boarding:small": ServiceType.BOARDING_SMALL,
    "boarding_small": ServiceType.BOARDING_SMALL,
    "boarding large": ServiceType.BOARDING_LARGE,
    "boarding:large": ServiceType.BOARDING_LARGE,
    "boarding_large": ServiceType.BOARDING_LARGE,
    "trial": ServiceType.TRIAL,
    "trial day": ServiceType.TRIAL,
    "trial:day": ServiceType.TRIAL,
}


def normalize_slot(slot: Optional[str]) -> str:
    return (slot or "").strip() or ALL_DAY


def display_slot(slot: Optional[str]) -> Optional[str]:
    return None if not slot or slot == ALL_DAY else slot
