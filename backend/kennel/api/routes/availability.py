"""
Read-only availability endpoints used by the booking forms and the admin
dashboard. Nothing here writes to the database.
"""

from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.errors import InvalidReservation
from kennel.core.logging import get_logger
from kennel.db.session import get_db
from kennel.models.catalog import ServiceType
from kennel.schemas.availability import AvailabilityResponse, CapacityOverview
from kennel.services import availability_service
from kennel.services.availability_service import CapacityKey
from kennel.services.cache_service import get_cached_overview, set_cached_overview

logger = get_logger(__name__)
router = APIRouter(tags=["Availability"])


def parse_service(raw: str) -> ServiceType:
    try:
        return ServiceType.parse(raw)
    except ValueError as e:
        raise InvalidReservation(str(e), service=raw)


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    service: str = Query(..., description="Service name or key, e.g. 'Daycare' or 'boarding:small'"),
    date: date_type = Query(...),
    slot: Optional[str] = Query(None, max_length=32),
    db: AsyncSession = Depends(get_db),
):
    """
    Remaining capacity for one service and date.
    Counts unpaid holds as well as paid bookings. Never cached.
    """
    key = CapacityKey.of(parse_service(service), date, slot)
    return await availability_service.get_availability(db, key)


@router.get("/capacity/overview", response_model=CapacityOverview)
async def get_capacity_overview(
    date: date_type = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Capacity, paid and held counts for every service on a date.
    Cached in Redis for OVERVIEW_CACHE_TTL seconds; invalidated on every
    reservation, payment and capacity change for that date.
    """
    cached = await get_cached_overview(date)
    if cached:
        logger.debug("capacity_overview_cache_hit", date=date.isoformat())
        return CapacityOverview.model_validate({**cached, "cached": True})

    overview = await availability_service.query_overview(db, date)
    await set_cached_overview(date, overview.model_dump(mode="json"))
    return overview
