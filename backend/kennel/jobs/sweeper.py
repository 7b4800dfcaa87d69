"""
Reservation expiry sweeper.

Runs sweep_expired() on a fixed interval as an asyncio task. Each iteration
gets its own session and its own error boundary: a failed sweep is logged,
counted and retried on the next tick, and never takes the host process down.
Missing a sweep only delays the release of abandoned holds.

Several sweepers (one per API process, or standalone deployments) may run at
the same time; the ledger's guarded status transition makes that safe.

Run standalone:
    python -m kennel.jobs.sweeper
"""

import asyncio
import time
import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kennel.core.config import get_settings
from kennel.core.logging import get_logger, setup_logging
from kennel.core.metrics import record_sweep, sweeper_duration
from kennel.db.session import AsyncSessionLocal
from kennel.services.cache_service import close_redis, invalidate_overview_cache
from kennel.services.reservation_service import SweepResult, sweep_expired

logger = get_logger(__name__)


class ReservationSweeper:
    """Periodic expiry sweep as a background task with start/stop control."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        interval_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.SWEEPER_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.SWEEPER_BATCH_SIZE
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[SweepResult]:
        """One sweep iteration. Returns None if it failed."""
        run_id = uuid.uuid4().hex[:8]
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(sweep_run_id=run_id):
            try:
                async with self.session_factory() as db:
                    result = await sweep_expired(db, batch_size=self.batch_size)
            except Exception as e:
                record_sweep(False)
                logger.exception("reservation_sweep_failed", error=str(e))
                return None
            finally:
                sweeper_duration.observe(time.perf_counter() - started)

            record_sweep(True, result.expired)
            for day in result.dates:
                await invalidate_overview_cache(day)
            return result

    async def _loop(self) -> None:
        logger.info("sweeper_started", interval_seconds=self.interval_seconds, batch_size=self.batch_size)
        while not self._stopping.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("sweeper_stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="reservation-sweeper")

    async def stop(self) -> None:
        if not self.running:
            return
        self._stopping.set()
        await self._task
        self._task = None

    async def run_forever(self) -> None:
        self.start()
        await self._task


async def _main() -> None:
    setup_logging()
    sweeper = ReservationSweeper()
    try:
        await sweeper.run_forever()
    finally:
        await close_redis()


if __name__ == "__main__":
    asyncio.run(_main())
