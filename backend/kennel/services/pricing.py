"""
Pricing engine: calendar-day billing.

PRICING MODEL
=============

Daycare and trial days are flat-rate. Boarding is billed per night, where a
night is one calendar-date boundary crossed between check-in and check-out
in the facility's time zone; time of day is ignored. A checkout slot that
starts at 16:00 or later adds a flat late-pickup fee, whatever the length
of the stay.

All amounts are whole euros. The conversion to the payment processor's
minor unit happens once, in to_minor_units(), when a booking is priced.

Everything here is pure: no I/O, no clock, no randomness.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from kennel.core.logging import get_logger
from kennel.models.catalog import ServiceType
from kennel.utils.time import facility_date

logger = get_logger(__name__)

PRICING_MODEL = "calendar_v2"

DAYCARE_FLAT = 20
TRIAL_FLAT = 20
BOARDING_NIGHT_1_DOG = 25
BOARDING_NIGHT_2_DOGS = 40
LATE_PICKUP_SURCHARGE = 10
LATE_PICKUP_HOUR = 16

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})")

DateLike = Union[str, date, datetime, None]


@dataclass(frozen=True)
class PriceQuote:
    total: int
    model: str = PRICING_MODEL
    nights: Optional[int] = None
    per_night: Optional[int] = None
    pm_surcharge: Optional[int] = None


def is_pm_label(label: Optional[str]) -> bool:
    """True when the first HH:MM in the label is at or after 16:00."""
    if not label:
        return False
    match = _TIME_RE.search(label)
    if not match:
        return False
    return int(match.group(1)) >= LATE_PICKUP_HOUR


def _to_calendar_date(value: DateLike) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return facility_date(value)
    if isinstance(value, date):
        return value
    try:
        return facility_date(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except (ValueError, AttributeError):
        return None


def count_nights(checkin: DateLike, checkout: DateLike) -> int:
    """Calendar nights between two instants, never fewer than one."""
    start = _to_calendar_date(checkin)
    end = _to_calendar_date(checkout)
    if start is None or end is None:
        logger.warning("pricing_unparseable_dates", checkin=str(checkin), checkout=str(checkout))
        return 1
    return max(1, (end - start).days)


def price_daycare() -> PriceQuote:
    return PriceQuote(total=DAYCARE_FLAT)


def price_trial() -> PriceQuote:
    return PriceQuote(total=TRIAL_FLAT)


def price_boarding(
    dog_count: int,
    checkin: DateLike,
    checkout: DateLike,
    checkout_time_label: Optional[str] = None,
) -> PriceQuote:
    per_night = BOARDING_NIGHT_2_DOGS if dog_count >= 2 else BOARDING_NIGHT_1_DOG
    nights = count_nights(checkin, checkout)
    pm_surcharge = LATE_PICKUP_SURCHARGE if is_pm_label(checkout_time_label) else 0
    return PriceQuote(
        total=nights * per_night + pm_surcharge,
        nights=nights,
        per_night=per_night,
        pm_surcharge=pm_surcharge,
    )


def quote(
    service: ServiceType,
    dog_count: int = 1,
    checkin: DateLike = None,
    checkout: DateLike = None,
    checkout_time_label: Optional[str] = None,
) -> PriceQuote:
    """Dispatch to the calculator for ``service``."""
    if service.is_boarding:
        return price_boarding(dog_count, checkin, checkout, checkout_time_label)
    if service is ServiceType.TRIAL:
        return price_trial()
    return price_daycare()


def to_minor_units(amount: int) -> int:
    return amount * 100
