"""Geocoding scheduler: periodic batch runs plus on-demand operations.

At most one batch is in flight per scheduler instance: a tick that fires
while a batch is still running is skipped.  Several scheduler instances (in
separate processes) remain safe because claiming is exclusive in the store.
"""

import asyncio
import enum
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_geocoder.core.config import Settings
from listing_geocoder.core.logging import component_logger
from listing_geocoder.lib.geocoder import BaseGeocoder
from listing_geocoder.services import queue_service
from listing_geocoder.services.queue_service import QueueStats
from listing_geocoder.services.worker_service import BatchSummary, GeocodeWorker, ItemResult

logger = component_logger("scheduler")


class SchedulerState(enum.StrEnum):
    """Whether a batch is currently in flight."""

    IDLE = "idle"
    RUNNING = "running"


class GeocodeScheduler:
    """Owns the tick loop that drives a :class:`GeocodeWorker`.

    Args:
        worker: Worker that processes batches.
        session_factory: Factory for maintenance-operation sessions.
        interval: Seconds between scheduled ticks.
        batch_size: Items claimed per batch.
        stale_after: Age after which ``processing`` items are reclaimed on each tick.
        cleanup_days: Default retention window for :meth:`cleanup`.
    """

    def __init__(
        self,
        worker: GeocodeWorker,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval: float = 300.0,
        batch_size: int = 10,
        stale_after: timedelta = queue_service.DEFAULT_STALE_AFTER,
        cleanup_days: int = 30,
    ) -> None:
        self.worker = worker
        self._session_factory = session_factory
        self.interval = interval
        self.batch_size = batch_size
        self.stale_after = stale_after
        self.cleanup_days = cleanup_days
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._lock.locked() else SchedulerState.IDLE

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> BatchSummary | None:
        """Run one scheduled cycle: stale sweep, then one batch.

        Returns:
            The batch summary, or None if the tick was skipped because a
            batch was already running.
        """
        if self._lock.locked():
            logger.debug("Geocoding batch still running; skipping tick")
            return None
        async with self._lock:
            await self.reset_stale()
            return await self.worker.process_batch(self.batch_size)

    async def run_batch(self, batch_size: int | None = None) -> BatchSummary:
        """Run one batch on demand, waiting for any in-flight batch to finish first."""
        async with self._lock:
            return await self.worker.process_batch(batch_size or self.batch_size)

    async def get_stats(self) -> QueueStats:
        async with self._session_factory() as session:
            return await queue_service.get_stats(session)

    async def cleanup(self, days: int | None = None) -> int:
        async with self._session_factory() as session:
            return await queue_service.cleanup(session, self.cleanup_days if days is None else days)

    async def reset_stale(self) -> int:
        async with self._session_factory() as session:
            return await queue_service.reset_stale(session, self.stale_after)

    async def process_one(self, subject_id: int, address: str) -> ItemResult:
        """Geocode a single listing immediately, bypassing the queue."""
        return await self.worker.process_single(subject_id, address)

    async def _wait_for_next_tick(self) -> bool:
        """Sleep for one interval; return False if stop() was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
        except TimeoutError:
            return True
        return False

    async def _loop(self) -> None:
        logger.info(f"Geocoding scheduler started (interval={self.interval}s, batch_size={self.batch_size})")
        while await self._wait_for_next_tick():
            try:
                await self.tick()
            except Exception:
                logger.exception("Geocoding scheduler tick failed")
        logger.info("Geocoding scheduler stopped")

    def start(self) -> None:
        """Start the periodic tick loop on the running event loop."""
        if self.is_started:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the tick loop.

        A batch already in flight is allowed to finish so that claimed items
        are not left in ``processing``.
        """
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None


def build_scheduler(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    geocoder: BaseGeocoder | None = None,
) -> GeocodeScheduler:
    """Wire a worker and scheduler from application settings."""
    worker = GeocodeWorker.from_settings(settings, session_factory, geocoder)
    return GeocodeScheduler(
        worker,
        session_factory,
        interval=settings.geocode_schedule_interval,
        batch_size=settings.geocode_batch_size,
        stale_after=timedelta(minutes=settings.geocode_stale_after_minutes),
        cleanup_days=settings.geocode_cleanup_days,
    )
