"""
Admin capacity configuration: per-service defaults and date-range overrides.

Writes here only change configuration rows and then re-apply the effective
capacity to the affected counter rows through the availability store, so the
next reservation attempt and every availability read see the new value.
Lowering capacity below what is already held or paid never cancels anything;
it only stops new holds until usage drops.
"""

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.logging import get_logger
from kennel.models.capacity import CapacityDefault, CapacityOverride, CapacityRecord
from kennel.models.catalog import ServiceType, normalize_slot
from kennel.schemas.availability import (
    CapacityDefaults,
    CapacityOverrideIn,
    CapacityOverrideOut,
    CapacitySettings,
)
from kennel.services import availability_service
from kennel.services.availability_service import CapacityKey, dialect_insert
from kennel.utils.time import facility_today, utcnow

logger = get_logger(__name__)

DEFAULT_FIELDS = {
    ServiceType.DAYCARE: "daycare",
    ServiceType.BOARDING_SMALL: "boarding_small",
    ServiceType.BOARDING_LARGE: "boarding_large",
    ServiceType.TRIAL: "trial",
}


async def _refresh_records(
    db: AsyncSession,
    service: Optional[ServiceType] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> int:
    """Re-apply effective capacity to existing counter rows from today onwards."""
    today = facility_today()
    query = select(CapacityRecord.service, CapacityRecord.date, CapacityRecord.slot).where(
        CapacityRecord.date >= max(start or today, today)
    )
    if service is not None:
        query = query.where(CapacityRecord.service == service)
    if end is not None:
        query = query.where(CapacityRecord.date <= end)

    rows = (await db.execute(query)).all()
    for row_service, day, slot in rows:
        await availability_service.get_or_create(db, CapacityKey(row_service, day, slot))
    return len(rows)


async def get_defaults(db: AsyncSession) -> CapacityDefaults:
    result = await db.execute(select(CapacityDefault))
    stored = {d.service: d.capacity for d in result.scalars().all()}
    return CapacityDefaults(**{
        field: stored.get(service, availability_service.fallback_capacity(service))
        for service, field in DEFAULT_FIELDS.items()
    })


async def get_capacity_settings(db: AsyncSession) -> CapacitySettings:
    result = await db.execute(
        select(CapacityOverride).order_by(
            CapacityOverride.service, CapacityOverride.date_start, CapacityOverride.slot
        )
    )
    overrides = [CapacityOverrideOut.model_validate(o) for o in result.scalars().all()]
    return CapacitySettings(defaults=await get_defaults(db), overrides=overrides)


async def update_defaults(db: AsyncSession, defaults: CapacityDefaults) -> CapacitySettings:
    now = utcnow()
    for service, field in DEFAULT_FIELDS.items():
        stmt = dialect_insert(db, CapacityDefault).values(
            service=service, capacity=getattr(defaults, field), updated_at=now
        )
        await db.execute(
            stmt.on_conflict_do_update(
                index_elements=["service"],
                set_={"capacity": stmt.excluded.capacity, "updated_at": stmt.excluded.updated_at},
            )
        )

    refreshed = await _refresh_records(db)
    await db.commit()

    logger.info("capacity_defaults_updated", refreshed=refreshed, **defaults.model_dump())
    return await get_capacity_settings(db)


async def upsert_override(db: AsyncSession, override: CapacityOverrideIn) -> int:
    """
    Create or replace the override with this (service, date_start, date_end, slot).
    Counter rows for the override's days are created if missing.
    Returns the number of counter rows touched.
    """
    slot = normalize_slot(override.slot)
    now = utcnow()
    stmt = dialect_insert(db, CapacityOverride).values(
        service=override.service,
        date_start=override.date_start,
        date_end=override.date_end,
        slot=slot,
        capacity=override.capacity,
        created_at=now,
        updated_at=now,
    )
    await db.execute(
        stmt.on_conflict_do_update(
            index_elements=["service", "date_start", "date_end", "slot"],
            set_={"capacity": stmt.excluded.capacity, "updated_at": stmt.excluded.updated_at},
        )
    )

    day = max(override.date_start, facility_today())
    while day <= override.date_end:
        await availability_service.get_or_create(db, CapacityKey(override.service, day, slot))
        day += timedelta(days=1)

    touched = await _refresh_records(db, override.service, override.date_start, override.date_end)
    await db.commit()

    logger.info(
        "capacity_override_saved",
        service=override.service.value,
        date_start=override.date_start.isoformat(),
        date_end=override.date_end.isoformat(),
        slot=slot,
        capacity=override.capacity,
    )
    return touched


async def delete_override(
    db: AsyncSession,
    service: ServiceType,
    date_start: date,
    date_end: Optional[date] = None,
    slot: Optional[str] = None,
) -> int:
    date_end = date_end or date_start
    slot = normalize_slot(slot)
    result = await db.execute(
        delete(CapacityOverride).where(
            CapacityOverride.service == service,
            CapacityOverride.date_start == date_start,
            CapacityOverride.date_end == date_end,
            CapacityOverride.slot == slot,
        )
    )
    deleted = result.rowcount
    if deleted:
        await _refresh_records(db, service, date_start, date_end)
    await db.commit()

    logger.info(
        "capacity_override_deleted",
        service=service.value,
        date_start=date_start.isoformat(),
        date_end=date_end.isoformat(),
        slot=slot,
        deleted=deleted,
    )
    return deleted


async def reset_overrides(db: AsyncSession) -> int:
    result = await db.execute(delete(CapacityOverride))
    deleted = result.rowcount
    await _refresh_records(db)
    await db.commit()

    logger.info("capacity_overrides_reset", deleted=deleted)
    return deleted
