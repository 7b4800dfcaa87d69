"""Initial schema: capacity counters, capacity configuration, reservations, bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SERVICE = sa.String(32)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Live counters, one row per (service, date, slot)
    op.create_table(
        "availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("service", SERVICE, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(32), nullable=False, server_default=sa.text("'ALL_DAY'")),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("confirmed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        # The conditional UPDATE and the lazy INSERT ... ON CONFLICT both rely on this
        sa.UniqueConstraint("service", "date", "slot", name="uq_availability_service_date_slot"),
        sa.CheckConstraint("capacity >= 0", name="check_availability_capacity_non_negative"),
        sa.CheckConstraint("reserved >= 0", name="check_availability_reserved_non_negative"),
        sa.CheckConstraint("confirmed >= 0", name="check_availability_confirmed_non_negative"),
    )
    op.create_index("ix_availability_date", "availability", ["date"])

    op.create_table(
        "capacity_defaults",
        sa.Column("service", SERVICE, primary_key=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("capacity >= 0", name="check_capacity_default_non_negative"),
    )

    op.create_table(
        "capacity_overrides",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("service", SERVICE, nullable=False),
        sa.Column("date_start", sa.Date(), nullable=False),
        sa.Column("date_end", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(32), nullable=False, server_default=sa.text("'ALL_DAY'")),
        sa.Column("capacity", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("service", "date_start", "date_end", "slot", name="uq_capacity_override_identity"),
        sa.CheckConstraint("capacity >= 0", name="check_capacity_override_non_negative"),
        sa.CheckConstraint("date_end >= date_start", name="check_capacity_override_range"),
    )
    op.create_index("ix_capacity_overrides_range", "capacity_overrides", ["date_start", "date_end"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("service", SERVICE, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("slot", sa.String(32), nullable=True),
        sa.Column("user_email", sa.String(320), nullable=False),
        sa.Column("dog_id", sa.String(36), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("pending_payment_ref", sa.String(120), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("idempotency_key", sa.String(64), nullable=True),
        *_timestamps(),
        # Retried reserve calls are deduplicated by this constraint, not by the lookup
        sa.UniqueConstraint("idempotency_key", name="uq_reservations_idempotency_key"),
        sa.CheckConstraint(
            "status IN ('active', 'committed', 'released', 'expired')",
            name="check_reservation_status",
        ),
    )
    op.create_index("ix_reservations_service_date", "reservations", ["service", "date"])
    # Sweeper scan: WHERE status = 'active' AND expires_at < now
    op.create_index("ix_reservations_status_expires", "reservations", ["status", "expires_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("reservation_id", sa.String(36), sa.ForeignKey("reservations.id"), nullable=True),
        sa.Column("service", SERVICE, nullable=False),
        sa.Column("user_email", sa.String(320), nullable=False),
        sa.Column("dog_id", sa.String(36), nullable=True),
        sa.Column("dog_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("service_date", sa.Date(), nullable=False),
        sa.Column("checkin_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checkout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("checkout_time_label", sa.String(32), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'eur'")),
        sa.Column("pricing_model", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default=sa.text("'unpaid'")),
        sa.Column("payment_ref", sa.String(120), nullable=True),
        sa.Column("needs_reconciliation", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.UniqueConstraint("reservation_id", name="uq_bookings_reservation_id"),
        sa.CheckConstraint("amount_cents >= 0", name="check_booking_amount_non_negative"),
        sa.CheckConstraint("dog_count > 0", name="check_booking_dog_count_positive"),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"),
        sa.CheckConstraint(
            "payment_status IN ('unpaid', 'paid', 'failed')",
            name="check_booking_payment_status",
        ),
    )
    op.create_index("ix_bookings_user_email", "bookings", ["user_email"])
    op.create_index("ix_bookings_payment_ref", "bookings", ["payment_ref"])
    # Ops query: paid bookings whose hold was already gone
    op.create_index(
        "ix_bookings_needs_reconciliation",
        "bookings",
        ["needs_reconciliation"],
        postgresql_where=sa.text("needs_reconciliation"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("reservations")
    op.drop_table("capacity_overrides")
    op.drop_table("capacity_defaults")
    op.drop_table("availability")
