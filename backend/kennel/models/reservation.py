"""
Reservation (hold) model: a short-lived claim on one unit of capacity.

Key design decisions:
- `status` only ever leaves 'active' through a guarded
  UPDATE ... WHERE status = 'active', so exactly one terminal transition wins
- Unique constraint on `idempotency_key` is what makes retried reserve calls
  at-most-once even when both retries race past the lookup
- Index on (status, expires_at) keeps the sweeper's scan cheap
- Rows are never deleted; terminal holds are history
"""

import enum
import uuid

from sqlalchemy import Column, Date, DateTime, Index, String, CheckConstraint

from kennel.db.base import Base, TimestampMixin
from kennel.models.capacity import service_column


class ReservationStatus(str, enum.Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    RELEASED = "released"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ReservationStatus.ACTIVE


def new_reservation_id() -> str:
    return str(uuid.uuid4())


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=new_reservation_id)
    service = service_column()
    date = Column(Date, nullable=False)
    slot = Column(String(32), nullable=True)
    user_email = Column(String(320), nullable=False)
    dog_id = Column(String(36), nullable=True)
    status = Column(String(16), nullable=False, default=ReservationStatus.ACTIVE.value)
    pending_payment_ref = Column(String(120), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    idempotency_key = Column(String(64), nullable=True, unique=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'committed', 'released', 'expired')",
            name="check_reservation_status",
        ),
        Index("ix_reservations_service_date", "service", "date"),
        Index("ix_reservations_status_expires", "status", "expires_at"),
    )

    @property
    def current_status(self) -> ReservationStatus:
        return ReservationStatus(self.status)

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, {self.service.value} {self.date}, status={self.status})>"
