"""
Availability store: per-(service, date, slot) capacity counters.

CONCURRENCY STRATEGY: Conditional UPDATE (row-level compare-and-swap)
=====================================================================

Problem:
  Two customers try to hold the last daycare place for the same day.
  Both read reserved + confirmed = capacity - 1, both increment.
  Result: Overbooking.

Solution:
  The capacity check and the increment are one statement:

    UPDATE availability
       SET reserved = reserved + :n
     WHERE service = :service AND date = :date AND slot = :slot
       AND reserved + confirmed + :n <= capacity

  If rowcount == 0 the key is full. The database evaluates the predicate
  against the row it locks for the write (PostgreSQL re-checks it after
  waiting on a concurrent writer), so no two callers can both take the last
  unit. There is no read-then-write in application code and therefore
  nothing to retry.

  Releases and commits use the same single-statement pattern and clamp
  `reserved` at zero, so a double release can never drive it negative.

Record lifecycle:
  Rows are created lazily with INSERT ... ON CONFLICT DO NOTHING against the
  (service, date, slot) unique constraint, so two first-ever reservations for
  a day cannot create two rows. Each get_or_create also refreshes `capacity`
  to the current effective value (defaults merged with overrides).

Functions here never commit: they run inside the caller's transaction so the
ledger can make the counter change and the hold row atomic together.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.config import get_settings
from kennel.core.errors import CapacityExceeded
from kennel.core.logging import get_logger
from kennel.models.capacity import CapacityDefault, CapacityOverride, CapacityRecord
from kennel.models.catalog import ALL_DAY, ServiceType, display_slot, normalize_slot
from kennel.schemas.availability import AvailabilityResponse, CapacityOverview, OverviewTotals, ResourceUsage
from kennel.utils.time import as_utc

logger = get_logger(__name__)


@dataclass(frozen=True)
class CapacityKey:
    service: ServiceType
    date: date
    slot: str = ALL_DAY

    @classmethod
    def of(cls, service: ServiceType, day: date, slot: Optional[str] = None) -> "CapacityKey":
        return cls(service=service, date=day, slot=normalize_slot(slot))

    def where(self):
        return (
            CapacityRecord.service == self.service,
            CapacityRecord.date == self.date,
            CapacityRecord.slot == self.slot,
        )


def dialect_insert(db: AsyncSession, model):
    """INSERT construct with ON CONFLICT support for the bound backend."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def fallback_capacity(service: ServiceType) -> int:
    settings = get_settings()
    return {
        ServiceType.DAYCARE: settings.MAX_CAPACITY_DAYCARE,
        ServiceType.BOARDING_SMALL: settings.MAX_CAPACITY_BOARDING_SMALL,
        ServiceType.BOARDING_LARGE: settings.MAX_CAPACITY_BOARDING_LARGE,
        ServiceType.TRIAL: settings.MAX_CAPACITY_TRIAL,
    }[service]


def pick_override(overrides: Iterable[CapacityOverride], slot: str) -> Optional[CapacityOverride]:
    """
    Most specific override wins: an exact slot match beats ALL_DAY, then the
    narrowest date range, then the most recently written.
    """
    candidates = [o for o in overrides if o.slot in (slot, ALL_DAY)]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda o: (o.slot != slot, o.span_days, -as_utc(o.updated_at).timestamp()),
    )


async def resolve_capacities(
    db: AsyncSession,
    services: Iterable[ServiceType],
    day: date,
    slot: str = ALL_DAY,
) -> dict[ServiceType, int]:
    """Effective capacity per service for one date: override, else default, else config."""
    services = list(services)

    defaults_result = await db.execute(
        select(CapacityDefault).where(CapacityDefault.service.in_(services))
    )
    defaults = {d.service: d.capacity for d in defaults_result.scalars().all()}

    overrides_result = await db.execute(
        select(CapacityOverride).where(
            CapacityOverride.service.in_(services),
            CapacityOverride.date_start <= day,
            CapacityOverride.date_end >= day,
        )
    )
    overrides = list(overrides_result.scalars().all())

    capacities = {}
    for service in services:
        winner = pick_override((o for o in overrides if o.service == service), slot)
        if winner is not None:
            capacities[service] = winner.capacity
        else:
            capacities[service] = defaults.get(service, fallback_capacity(service))
    return capacities


async def effective_capacity(db: AsyncSession, key: CapacityKey) -> int:
    capacities = await resolve_capacities(db, [key.service], key.date, key.slot)
    return capacities[key.service]


async def get_or_create(db: AsyncSession, key: CapacityKey) -> CapacityRecord:
    """Return the counter row for ``key``, creating it at the effective capacity."""
    capacity = await effective_capacity(db, key)

    await db.execute(
        dialect_insert(db, CapacityRecord)
        .values(
            service=key.service,
            date=key.date,
            slot=key.slot,
            capacity=capacity,
            reserved=0,
            confirmed=0,
        )
        .on_conflict_do_nothing(index_elements=["service", "date", "slot"])
    )
    # Pick up admin changes made since the row was created
    await db.execute(
        update(CapacityRecord)
        .where(*key.where(), CapacityRecord.capacity != capacity)
        .values(capacity=capacity)
    )

    result = await db.execute(
        select(CapacityRecord).where(*key.where()).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def try_reserve(db: AsyncSession, key: CapacityKey, n: int = 1) -> None:
    """Atomically take ``n`` units of ``key`` into `reserved`, or raise CapacityExceeded."""
    record = await get_or_create(db, key)

    result = await db.execute(
        update(CapacityRecord)
        .where(
            *key.where(),
            CapacityRecord.reserved + CapacityRecord.confirmed + n <= CapacityRecord.capacity,
        )
        .values(reserved=CapacityRecord.reserved + n)
    )

    if result.rowcount == 0:
        logger.info(
            "capacity_exceeded",
            service=key.service.value,
            date=key.date.isoformat(),
            slot=key.slot,
            capacity=record.capacity,
            requested=n,
        )
        raise CapacityExceeded(service=key.service.value, date=key.date.isoformat())


def _decrement_reserved(n: int):
    return case((CapacityRecord.reserved >= n, CapacityRecord.reserved - n), else_=0)


async def commit(db: AsyncSession, key: CapacityKey, n: int = 1) -> None:
    """Move ``n`` units from `reserved` to `confirmed`."""
    result = await db.execute(
        update(CapacityRecord)
        .where(*key.where())
        .values(
            reserved=_decrement_reserved(n),
            confirmed=CapacityRecord.confirmed + n,
        )
    )
    if result.rowcount == 0:
        logger.error("capacity_record_missing", action="commit", service=key.service.value,
                     date=key.date.isoformat(), slot=key.slot)


async def release(db: AsyncSession, key: CapacityKey, n: int = 1) -> None:
    """Return ``n`` held units; `reserved` never goes below zero."""
    result = await db.execute(
        update(CapacityRecord)
        .where(*key.where())
        .values(reserved=_decrement_reserved(n))
    )
    if result.rowcount == 0:
        logger.error("capacity_record_missing", action="release", service=key.service.value,
                     date=key.date.isoformat(), slot=key.slot)


async def get_availability(db: AsyncSession, key: CapacityKey) -> AvailabilityResponse:
    """
    Read-only remaining-capacity projection for one key.
    Never creates a row; a key nobody has reserved yet reads as empty.
    """
    capacity = await effective_capacity(db, key)
    result = await db.execute(select(CapacityRecord).where(*key.where()))
    record = result.scalar_one_or_none()

    reserved = record.reserved if record else 0
    confirmed = record.confirmed if record else 0
    return AvailabilityResponse(
        service=key.service,
        date=key.date,
        slot=display_slot(key.slot),
        capacity=capacity,
        confirmed=confirmed,
        reserved=reserved,
        available=max(0, capacity - reserved - confirmed),
    )


def _usage(capacity: int, booked: int, reserved: int) -> ResourceUsage:
    return ResourceUsage(
        capacity=capacity,
        booked=booked,
        reserved=reserved,
        available=max(0, capacity - booked - reserved),
    )


async def query_overview(db: AsyncSession, day: date) -> CapacityOverview:
    """Capacity, paid and held counts for every service on ``day``."""
    services = list(ServiceType)
    capacities = await resolve_capacities(db, services, day)

    counts_result = await db.execute(
        select(
            CapacityRecord.service,
            func.coalesce(func.sum(CapacityRecord.confirmed), 0),
            func.coalesce(func.sum(CapacityRecord.reserved), 0),
        )
        .where(CapacityRecord.date == day)
        .group_by(CapacityRecord.service)
    )
    counts = {service: (int(booked), int(reserved)) for service, booked, reserved in counts_result.all()}

    resources = {}
    for service in services:
        booked, reserved = counts.get(service, (0, 0))
        resources[service.resource_key] = _usage(capacities[service], booked, reserved)

    small = resources[ServiceType.BOARDING_SMALL.resource_key]
    large = resources[ServiceType.BOARDING_LARGE.resource_key]
    boarding = _usage(
        small.capacity + large.capacity,
        small.booked + large.booked,
        small.reserved + large.reserved,
    )

    total_capacity = sum(r.capacity for r in resources.values())
    total_booked = sum(r.booked for r in resources.values())
    total_reserved = sum(r.reserved for r in resources.values())
    occupied = total_booked + total_reserved
    utilisation = round(occupied / total_capacity * 100) if total_capacity > 0 else 0

    return CapacityOverview(
        date=day,
        resources=resources,
        aggregate={"boarding": boarding},
        totals=OverviewTotals(
            capacity=total_capacity,
            booked=total_booked,
            reserved=total_reserved,
            occupied=occupied,
            available=max(0, total_capacity - occupied),
            utilisation_pct=utilisation,
        ),
    )
