"""
Booking model: the durable record a customer pays for.

Key design decisions:
- One booking per reservation (unique `reservation_id`), so a retried
  create-booking call cannot produce two payable records for one hold
- `amount_cents` is stored in minor units; the pricing engine's whole-euro
  total is converted exactly once, when the booking is priced
- `needs_reconciliation` flags a paid booking whose hold was already gone
- Status fields allow cancellation and failure without deleting records
"""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, CheckConstraint, text

from kennel.db.base import Base, TimestampMixin
from kennel.models.capacity import service_column


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=True, unique=True)
    service = service_column()
    user_email = Column(String(320), nullable=False, index=True)
    dog_id = Column(String(36), nullable=True)
    dog_count = Column(Integer, nullable=False, default=1)
    service_date = Column(Date, nullable=False)
    checkin_at = Column(DateTime(timezone=True), nullable=True)
    checkout_at = Column(DateTime(timezone=True), nullable=True)
    checkout_time_label = Column(String(32), nullable=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="eur")
    pricing_model = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    payment_status = Column(String(16), nullable=False, default="unpaid")
    payment_ref = Column(String(120), nullable=True, index=True)
    needs_reconciliation = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="check_booking_amount_non_negative"),
        CheckConstraint("dog_count > 0", name="check_booking_dog_count_positive"),
        CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        CheckConstraint("payment_status IN ('unpaid', 'paid', 'failed')", name="check_booking_payment_status"),
        Index("ix_bookings_needs_reconciliation", "needs_reconciliation", postgresql_where=text("needs_reconciliation")),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, reservation={self.reservation_id}, payment={self.payment_status})>"
