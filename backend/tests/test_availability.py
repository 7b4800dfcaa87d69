"""
Tests for the availability store: counters, effective capacity and the overview.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from kennel.core.errors import CapacityExceeded
from kennel.models.capacity import CapacityRecord
from kennel.models.catalog import ALL_DAY, ServiceType
from kennel.schemas.availability import CapacityDefaults, CapacityOverrideIn
from kennel.services import availability_service, capacity_service
from kennel.services.availability_service import CapacityKey


async def _record(db, key: CapacityKey) -> CapacityRecord:
    result = await db.execute(
        select(CapacityRecord).where(*key.where()).execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_get_or_create_uses_fallback_capacity(db_session, day):
    key = CapacityKey.of(ServiceType.BOARDING_LARGE, day)
    record = await availability_service.get_or_create(db_session, key)
    await db_session.commit()

    assert record.capacity == 8
    assert record.reserved == 0
    assert record.confirmed == 0
    assert record.slot == ALL_DAY


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(db_session, day):
    key = CapacityKey.of(ServiceType.DAYCARE, day)
    await availability_service.get_or_create(db_session, key)
    await availability_service.get_or_create(db_session, key)
    await db_session.commit()

    count = await db_session.scalar(select(func.count()).select_from(CapacityRecord))
    assert count == 1


@pytest.mark.asyncio
async def test_try_reserve_until_full(db_session, day):
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, capacity=2)
    )
    key = CapacityKey.of(ServiceType.DAYCARE, day)

    await availability_service.try_reserve(db_session, key)
    await availability_service.try_reserve(db_session, key)
    with pytest.raises(CapacityExceeded) as exc:
        await availability_service.try_reserve(db_session, key)
    await db_session.commit()

    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "FULL"
    record = await _record(db_session, key)
    assert record.reserved == 2


@pytest.mark.asyncio
async def test_confirmed_units_count_against_capacity(db_session, day):
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Trial Day", date_start=day, capacity=1)
    )
    key = CapacityKey.of(ServiceType.TRIAL, day)
    await availability_service.try_reserve(db_session, key)
    await availability_service.commit(db_session, key)
    await db_session.commit()

    with pytest.raises(CapacityExceeded):
        await availability_service.try_reserve(db_session, key)
    await db_session.rollback()

    record = await _record(db_session, key)
    assert (record.reserved, record.confirmed) == (0, 1)


@pytest.mark.asyncio
async def test_release_clamps_at_zero(db_session, day):
    key = CapacityKey.of(ServiceType.DAYCARE, day)
    await availability_service.try_reserve(db_session, key)
    await availability_service.release(db_session, key)
    await availability_service.release(db_session, key)
    await db_session.commit()

    record = await _record(db_session, key)
    assert record.reserved == 0


@pytest.mark.asyncio
async def test_slots_are_independent(db_session, day):
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, slot="AM", capacity=1)
    )
    am = CapacityKey.of(ServiceType.DAYCARE, day, "AM")
    pm = CapacityKey.of(ServiceType.DAYCARE, day, "PM")

    await availability_service.try_reserve(db_session, am)
    with pytest.raises(CapacityExceeded):
        await availability_service.try_reserve(db_session, am)
    await db_session.rollback()

    await availability_service.try_reserve(db_session, pm)
    await db_session.commit()
    assert (await _record(db_session, pm)).capacity == 10


@pytest.mark.asyncio
async def test_stored_default_beats_configured_fallback(db_session, day):
    await capacity_service.update_defaults(
        db_session, CapacityDefaults(daycare=4, boarding_small=6, boarding_large=3, trial=2)
    )
    capacity = await availability_service.effective_capacity(
        db_session, CapacityKey.of(ServiceType.BOARDING_SMALL, day)
    )
    assert capacity == 6


@pytest.mark.asyncio
async def test_narrower_override_wins(db_session, day):
    await capacity_service.upsert_override(
        db_session,
        CapacityOverrideIn(service="Daycare", date_start=day - timedelta(days=3), date_end=day + timedelta(days=3), capacity=5),
    )
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, capacity=2)
    )

    key = CapacityKey.of(ServiceType.DAYCARE, day)
    assert await availability_service.effective_capacity(db_session, key) == 2
    next_day = CapacityKey.of(ServiceType.DAYCARE, day + timedelta(days=1))
    assert await availability_service.effective_capacity(db_session, next_day) == 5


@pytest.mark.asyncio
async def test_slot_override_beats_all_day_override(db_session, day):
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, capacity=7)
    )
    await capacity_service.upsert_override(
        db_session,
        CapacityOverrideIn(service="Daycare", date_start=day - timedelta(days=1), date_end=day + timedelta(days=1), slot="AM", capacity=3),
    )

    am = CapacityKey.of(ServiceType.DAYCARE, day, "AM")
    all_day = CapacityKey.of(ServiceType.DAYCARE, day)
    assert await availability_service.effective_capacity(db_session, am) == 3
    assert await availability_service.effective_capacity(db_session, all_day) == 7


@pytest.mark.asyncio
async def test_removing_override_reverts_to_default(db_session, day):
    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, capacity=1)
    )
    key = CapacityKey.of(ServiceType.DAYCARE, day)
    assert (await availability_service.get_availability(db_session, key)).capacity == 1

    deleted = await capacity_service.delete_override(db_session, ServiceType.DAYCARE, day)
    assert deleted == 1

    view = await availability_service.get_availability(db_session, key)
    assert view.capacity == 10
    assert (await _record(db_session, key)).capacity == 10


@pytest.mark.asyncio
async def test_lowering_capacity_below_usage_blocks_new_holds(db_session, day):
    key = CapacityKey.of(ServiceType.DAYCARE, day)
    for _ in range(3):
        await availability_service.try_reserve(db_session, key)
    await db_session.commit()

    await capacity_service.upsert_override(
        db_session, CapacityOverrideIn(service="Daycare", date_start=day, capacity=1)
    )
    view = await availability_service.get_availability(db_session, key)
    assert view.reserved == 3
    assert view.available == 0

    with pytest.raises(CapacityExceeded):
        await availability_service.try_reserve(db_session, key)


@pytest.mark.asyncio
async def test_get_availability_does_not_create_rows(db_session, day):
    view = await availability_service.get_availability(
        db_session, CapacityKey.of(ServiceType.BOARDING_SMALL, day)
    )
    assert view.capacity == 10
    assert view.available == 10
    assert view.slot is None

    count = await db_session.scalar(select(func.count()).select_from(CapacityRecord))
    assert count == 0


@pytest.mark.asyncio
async def test_overview_boarding_aggregate_sums_both_sizes(db_session, day):
    small = CapacityKey.of(ServiceType.BOARDING_SMALL, day)
    large = CapacityKey.of(ServiceType.BOARDING_LARGE, day)
    await availability_service.try_reserve(db_session, small)
    await availability_service.try_reserve(db_session, small)
    await availability_service.commit(db_session, small)
    await availability_service.try_reserve(db_session, large)
    await db_session.commit()

    overview = await availability_service.query_overview(db_session, day)
    small_usage = overview.resources["boarding:small"]
    large_usage = overview.resources["boarding:large"]
    boarding = overview.aggregate["boarding"]

    assert (small_usage.capacity, small_usage.booked, small_usage.reserved) == (10, 1, 1)
    assert (large_usage.capacity, large_usage.booked, large_usage.reserved) == (8, 0, 1)
    assert boarding.capacity == small_usage.capacity + large_usage.capacity
    assert boarding.booked == small_usage.booked + large_usage.booked
    assert boarding.reserved == small_usage.reserved + large_usage.reserved
    assert boarding.available == 15

    assert set(overview.resources) == {"daycare", "boarding:small", "boarding:large", "trial:day"}
    assert overview.totals.capacity == 10 + 10 + 8 + 8
    assert overview.totals.occupied == 3
    assert overview.totals.utilisation_pct == round(3 / 36 * 100)


@pytest.mark.asyncio
async def test_overview_with_zero_capacity(db_session, day):
    await capacity_service.update_defaults(
        db_session, CapacityDefaults(daycare=0, boarding_small=0, boarding_large=0, trial=0)
    )
    overview = await availability_service.query_overview(db_session, day)
    assert overview.totals.capacity == 0
    assert overview.totals.utilisation_pct == 0
    assert overview.totals.available == 0
