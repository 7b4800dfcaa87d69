"""
Pydantic schemas for availability reads and capacity administration.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from kennel.schemas.base import CamelModel, ServiceField


class AvailabilityResponse(CamelModel):
    service: ServiceField
    date: date
    slot: Optional[str]
    capacity: int
    confirmed: int
    reserved: int
    available: int


class ResourceUsage(CamelModel):
    capacity: int
    booked: int
    reserved: int
    available: int


class OverviewTotals(CamelModel):
    capacity: int
    booked: int
    reserved: int
    occupied: int
    available: int
    utilisation_pct: int


class CapacityOverview(CamelModel):
    date: date
    resources: dict[str, ResourceUsage]
    aggregate: dict[str, ResourceUsage]
    totals: OverviewTotals
    cached: bool = False


class CapacityDefaults(CamelModel):
    daycare: int = Field(..., ge=0)
    boarding_small: int = Field(..., ge=0)
    boarding_large: int = Field(..., ge=0)
    trial: int = Field(..., ge=0)


class CapacityOverrideIn(BaseModel):
    """Admin override body. Field names follow the admin screen's snake_case."""

    service: ServiceField
    date_start: date
    date_end: Optional[date] = None
    slot: Optional[str] = Field(None, max_length=32)
    capacity: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _default_and_check_range(self):
        if self.date_end is None:
            self.date_end = self.date_start
        if self.date_end < self.date_start:
            raise ValueError("date_end must not be before date_start")
        return self


class CapacityOverrideOut(BaseModel):
    service: ServiceField
    date_start: date
    date_end: date
    slot: str
    capacity: int

    model_config = {"from_attributes": True}


class CapacitySettings(BaseModel):
    defaults: CapacityDefaults
    overrides: list[CapacityOverrideOut]


class AdminActionResponse(BaseModel):
    success: bool = True
    message: str
    affected: int = 0
