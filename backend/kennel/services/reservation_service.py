"""
Reservation ledger: owns the hold lifecycle.

State machine:
    active --release--> released
    active --commit---> committed
    active --sweep----> expired      (expires_at passed while still active)

Every transition out of 'active' is a guarded UPDATE:

    UPDATE reservations SET status = :target
     WHERE id = :id AND status = 'active'

Exactly one caller sees rowcount == 1 and only that caller touches the
availability counters. A second release, a release racing a commit, or two
sweepers racing on the same hold all see rowcount == 0 and do nothing, which
is what makes release/commit idempotent and the sweeper safe to run from
several processes at once.

Idempotency keys:
  A retried reserve with the same key returns the original hold instead of
  consuming capacity again. The lookup alone is not enough (two retries can
  both miss it), so the unique constraint on `idempotency_key` is the real
  guard: the loser's INSERT fails, its transaction (including its counter
  increment) is rolled back, and it returns the winner's row.
"""

import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kennel.core.config import get_settings
from kennel.core.errors import (
    CapacityExceeded,
    IdempotencyKeyExpired,
    InvalidReservation,
    ReservationAlreadyTerminal,
    ReservationNotFound,
)
from kennel.core.logging import get_logger
from kennel.core.metrics import record_reservation_attempt, record_transition, reserve_latency
from kennel.models.catalog import normalize_slot
from kennel.models.reservation import Reservation, ReservationStatus
from kennel.schemas.reservation import ReservationCreate
from kennel.services import availability_service
from kennel.services.availability_service import CapacityKey
from kennel.utils.time import as_utc, facility_today, utcnow

logger = get_logger(__name__)


@dataclass
class SweepResult:
    expired: int = 0
    failed: int = 0
    dates: set[date] = field(default_factory=set)


def capacity_key(reservation: Reservation) -> CapacityKey:
    return CapacityKey.of(reservation.service, reservation.date, reservation.slot)


async def _find_by_idempotency_key(db: AsyncSession, key: str) -> Optional[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.idempotency_key == key)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _reuse(existing: Reservation, data: ReservationCreate, now: datetime) -> Reservation:
    """Resolve a retried reserve call against the hold its key already points to."""
    if (
        existing.service != data.service
        or existing.date != data.date
        or normalize_slot(existing.slot) != normalize_slot(data.slot)
    ):
        raise InvalidReservation(
            "Idempotency key was already used for a different reservation",
            idempotency_key=data.idempotency_key,
        )

    status = existing.current_status
    usable = status == ReservationStatus.COMMITTED or (
        status == ReservationStatus.ACTIVE and as_utc(existing.expires_at) > now
    )
    if not usable:
        logger.info(
            "idempotency_key_expired",
            reservation_id=existing.id,
            status=existing.status,
        )
        raise IdempotencyKeyExpired(reservation_id=existing.id)

    record_reservation_attempt(data.service.value, "duplicate")
    logger.info("reservation_deduplicated", reservation_id=existing.id)
    return existing


async def reserve(
    db: AsyncSession,
    data: ReservationCreate,
    now: Optional[datetime] = None,
) -> Reservation:
    """
    Place a hold on one unit of capacity.
    Raises CapacityExceeded without writing anything when the key is full.
    """
    now = now or utcnow()
    started = time.perf_counter()

    if data.date < facility_today():
        raise InvalidReservation("Cannot reserve a date in the past", date=data.date.isoformat())

    if data.idempotency_key:
        existing = await _find_by_idempotency_key(db, data.idempotency_key)
        if existing is not None:
            return _reuse(existing, data, now)

    key = CapacityKey.of(data.service, data.date, data.slot)
    reservation = Reservation(
        service=data.service,
        date=data.date,
        slot=data.slot,
        user_email=str(data.user_email),
        dog_id=data.dog_id,
        status=ReservationStatus.ACTIVE.value,
        expires_at=now + timedelta(minutes=get_settings().RESERVATION_TTL_MINUTES),
        idempotency_key=data.idempotency_key,
    )

    try:
        await availability_service.try_reserve(db, key)
        db.add(reservation)
        await db.commit()
    except CapacityExceeded:
        await db.rollback()
        record_reservation_attempt(data.service.value, "full")
        raise
    except IntegrityError:
        # Lost an idempotency-key race; the rollback also undoes our increment
        await db.rollback()
        if not data.idempotency_key:
            raise
        existing = await _find_by_idempotency_key(db, data.idempotency_key)
        if existing is None:
            raise
        return _reuse(existing, data, now)
    finally:
        reserve_latency.observe(time.perf_counter() - started)

    record_reservation_attempt(data.service.value, "reserved")
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        service=data.service.value,
        date=data.date.isoformat(),
        slot=key.slot,
        expires_at=reservation.expires_at.isoformat(),
    )
    return reservation


async def get_reservation(db: AsyncSession, reservation_id: str) -> Reservation:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .execution_options(populate_existing=True)
    )
    reservation = result.scalar_one_or_none()
    if reservation is None:
        raise ReservationNotFound(reservation_id=reservation_id)
    return reservation


async def _transition(db: AsyncSession, reservation_id: str, target: ReservationStatus, *guards) -> bool:
    result = await db.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == ReservationStatus.ACTIVE.value,
            *guards,
        )
        .values(status=target.value)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release(db: AsyncSession, reservation_id: str) -> tuple[Optional[Reservation], bool]:
    """
    Release a hold. Idempotent: releasing an unknown or already-terminal
    reservation is a no-op.

    Returns ``(reservation, released)``. The reservation is None if it never
    existed; ``released`` is True only for the call that moved it out of
    'active', so a retry of a finished release reports False.
    """
    try:
        reservation = await get_reservation(db, reservation_id)
    except ReservationNotFound:
        logger.info("reservation_release_unknown", reservation_id=reservation_id)
        return None, False

    if reservation.current_status.is_terminal:
        logger.debug("reservation_release_noop", reservation_id=reservation_id, status=reservation.status)
        return reservation, False

    if not await _transition(db, reservation_id, ReservationStatus.RELEASED):
        # Someone else moved it out of 'active' first
        await db.rollback()
        return await get_reservation(db, reservation_id), False

    await availability_service.release(db, capacity_key(reservation))
    await db.commit()
    await db.refresh(reservation)

    record_transition(ReservationStatus.RELEASED.value)
    logger.info(
        "reservation_released",
        reservation_id=reservation_id,
        service=reservation.service.value,
        date=reservation.date.isoformat(),
    )
    return reservation, True


async def commit(db: AsyncSession, reservation_id: str) -> Reservation:
    """
    Convert a hold into confirmed capacity.

    Committing twice is a no-op. Committing a released or expired hold raises
    ReservationAlreadyTerminal: the caller (payment reconciliation) must deal
    with a payment whose slot is gone.
    """
    reservation = await get_reservation(db, reservation_id)

    if reservation.current_status == ReservationStatus.ACTIVE:
        if await _transition(db, reservation_id, ReservationStatus.COMMITTED):
            await availability_service.commit(db, capacity_key(reservation))
            await db.commit()
            await db.refresh(reservation)

            record_transition(ReservationStatus.COMMITTED.value)
            logger.info(
                "reservation_committed",
                reservation_id=reservation_id,
                service=reservation.service.value,
                date=reservation.date.isoformat(),
            )
            return reservation

        await db.rollback()
        reservation = await get_reservation(db, reservation_id)

    if reservation.current_status == ReservationStatus.COMMITTED:
        logger.debug("reservation_commit_noop", reservation_id=reservation_id)
        return reservation

    raise ReservationAlreadyTerminal(reservation_id, reservation.status)


async def attach_payment_ref(db: AsyncSession, reservation_id: str, payment_ref: str) -> None:
    """Record the processor reference on an active hold. Runs in the caller's transaction."""
    await db.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.status == ReservationStatus.ACTIVE.value,
        )
        .values(pending_payment_ref=payment_ref)
        .execution_options(synchronize_session=False)
    )


async def _expire_one(db: AsyncSession, row, now: datetime, result: SweepResult) -> bool:
    """Expire a single candidate in its own transaction. Returns False if the write failed."""
    reservation_id, service, day, slot = row
    try:
        expired = await _transition(
            db, reservation_id, ReservationStatus.EXPIRED, Reservation.expires_at < now
        )
        if expired:
            await availability_service.release(db, CapacityKey.of(service, day, slot))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        result.failed += 1
        logger.error("reservation_expire_failed", reservation_id=reservation_id, error=str(e))
        return False

    if expired:
        result.expired += 1
        result.dates.add(day)
        record_transition(ReservationStatus.EXPIRED.value)
        logger.info("reservation_expired", reservation_id=reservation_id, service=service.value,
                    date=day.isoformat())
    return True


async def sweep_expired(
    db: AsyncSession,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
) -> SweepResult:
    """
    Expire every active hold whose expires_at is before ``now`` and return
    its capacity.

    Candidates are read ``batch_size`` at a time and batches repeat until a
    short one comes back, so a single call drains the whole backlog. Each
    hold is its own transaction: one bad row does not stop the rest, and a
    row that failed is skipped for the remainder of this call.
    """
    now = now or utcnow()
    batch_size = batch_size or get_settings().SWEEPER_BATCH_SIZE

    result = SweepResult()
    skipped: set[str] = set()
    batches = 0
    while True:
        query = (
            select(Reservation.id, Reservation.service, Reservation.date, Reservation.slot)
            .where(
                Reservation.status == ReservationStatus.ACTIVE.value,
                Reservation.expires_at < now,
            )
            .order_by(Reservation.expires_at)
            .limit(batch_size)
        )
        if skipped:
            query = query.where(Reservation.id.notin_(list(skipped)))

        rows = (await db.execute(query)).all()
        # End the read transaction without expiring objects the caller holds
        await db.commit()
        if not rows:
            break
        batches += 1

        for row in rows:
            if not await _expire_one(db, row, now, result):
                skipped.add(row[0])

        if len(rows) < batch_size:
            break

    if batches:
        logger.info(
            "reservation_sweep_completed",
            batches=batches,
            expired=result.expired,
            failed=result.failed,
        )
    return result
