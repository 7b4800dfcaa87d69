"""
Admin endpoints: capacity configuration and operational actions.
All routes require a bearer token with the admin role.
"""

from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.api.routes.availability import parse_service
from kennel.core.logging import get_logger
from kennel.core.security import require_admin
from kennel.db.session import get_db
from kennel.schemas.availability import (
    AdminActionResponse,
    CapacityDefaults,
    CapacityOverrideIn,
    CapacitySettings,
)
from kennel.schemas.reservation import SweepResponse
from kennel.services import capacity_service, reservation_service
from kennel.services.cache_service import invalidate_overview_cache

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.get("/capacity", response_model=CapacitySettings)
async def get_capacity_settings(db: AsyncSession = Depends(get_db)):
    """Current per-service defaults and every override."""
    return await capacity_service.get_capacity_settings(db)


@router.put("/capacity/defaults", response_model=CapacitySettings)
async def update_capacity_defaults(
    defaults: CapacityDefaults,
    db: AsyncSession = Depends(get_db),
):
    settings = await capacity_service.update_defaults(db, defaults)
    await invalidate_overview_cache()
    return settings


@router.post("/capacity/overrides", response_model=AdminActionResponse)
async def save_capacity_override(
    override: CapacityOverrideIn,
    db: AsyncSession = Depends(get_db),
):
    touched = await capacity_service.upsert_override(db, override)
    await invalidate_overview_cache()
    return AdminActionResponse(message="Capacity override saved", affected=touched)


@router.delete("/capacity/overrides", response_model=AdminActionResponse)
async def delete_capacity_override(
    service: str = Query(...),
    date_start: date_type = Query(...),
    date_end: Optional[date_type] = Query(None),
    slot: Optional[str] = Query(None, max_length=32),
    db: AsyncSession = Depends(get_db),
):
    deleted = await capacity_service.delete_override(
        db, parse_service(service), date_start, date_end, slot
    )
    await invalidate_overview_cache()
    message = "Capacity override deleted" if deleted else "No matching capacity override"
    return AdminActionResponse(message=message, affected=deleted)


@router.post("/capacity/reset", response_model=AdminActionResponse)
async def reset_capacity_overrides(db: AsyncSession = Depends(get_db)):
    deleted = await capacity_service.reset_overrides(db)
    await invalidate_overview_cache()
    return AdminActionResponse(message="All capacity overrides have been reset", affected=deleted)


@router.post("/reservations/sweep", response_model=SweepResponse)
async def sweep_reservations(
    admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Run one expiry sweep now instead of waiting for the next tick."""
    result = await reservation_service.sweep_expired(db)
    for day in result.dates:
        await invalidate_overview_cache(day)
    logger.info("manual_sweep", admin=admin, expired=result.expired)
    return SweepResponse(expired=result.expired)
