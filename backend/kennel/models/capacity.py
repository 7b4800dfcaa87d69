"""
Capacity models: the live per-day counters plus the admin configuration
they are derived from.

Key design decisions:
- One `availability` row per (service, date, slot); the unique constraint is
  what makes lazy creation safe under concurrent first reservations
- `reserved` counts active unpaid holds, `confirmed` counts paid bookings;
  both only change through single conditional UPDATE statements
- CHECK constraints keep the counters non-negative at the DB level
- Overrides are keyed by their full identity so admin writes are upserts
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Enum, Index, UniqueConstraint, CheckConstraint

from kennel.db.base import Base, TimestampMixin
from kennel.models.catalog import ALL_DAY, ServiceType


def service_column(**kwargs) -> Column:
    return Column(
        Enum(
            ServiceType,
            native_enum=False,
            length=32,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        **kwargs,
    )


class CapacityRecord(Base, TimestampMixin):
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service = service_column()
    date = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)
    capacity = Column(Integer, nullable=False)
    reserved = Column(Integer, nullable=False, default=0)
    confirmed = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("service", "date", "slot", name="uq_availability_service_date_slot"),
        CheckConstraint("capacity >= 0", name="check_availability_capacity_non_negative"),
        CheckConstraint("reserved >= 0", name="check_availability_reserved_non_negative"),
        CheckConstraint("confirmed >= 0", name="check_availability_confirmed_non_negative"),
        # Overview reads every service for one date
        Index("ix_availability_date", "date"),
    )

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.reserved - self.confirmed)

    def __repr__(self) -> str:
        return (
            f"<CapacityRecord({self.service.value} {self.date} {self.slot}: "
            f"{self.reserved}+{self.confirmed}/{self.capacity})>"
        )


class CapacityDefault(Base):
    __tablename__ = "capacity_defaults"

    service = service_column(primary_key=True)
    capacity = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="check_capacity_default_non_negative"),
    )


class CapacityOverride(Base, TimestampMixin):
    __tablename__ = "capacity_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service = service_column()
    date_start = Column(Date, nullable=False)
    date_end = Column(Date, nullable=False)
    slot = Column(String(32), nullable=False, default=ALL_DAY)
    capacity = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("service", "date_start", "date_end", "slot", name="uq_capacity_override_identity"),
        CheckConstraint("capacity >= 0", name="check_capacity_override_non_negative"),
        CheckConstraint("date_end >= date_start", name="check_capacity_override_range"),
        Index("ix_capacity_overrides_range", "date_start", "date_end"),
    )

    @property
    def span_days(self) -> int:
        return (self.date_end - self.date_start).days

    def __repr__(self) -> str:
        return (
            f"<CapacityOverride({self.service.value} {self.date_start}..{self.date_end} "
            f"{self.slot} = {self.capacity})>"
        )
