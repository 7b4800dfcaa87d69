from datetime import date, datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from kennel.core.config import get_settings


@lru_cache()
def facility_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().FACILITY_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def facility_date(dt: datetime) -> date:
    """Calendar date of ``dt`` at the facility. Naive values are taken as facility-local."""
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(facility_tz()).date()


def facility_today() -> date:
    return utcnow().astimezone(facility_tz()).date()
