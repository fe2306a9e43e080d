"""Geocoding worker: drains claimed queue items one at a time.

Items are geocoded strictly sequentially with a minimum interval between
provider calls.  A single item's failure is recorded on that item and never
aborts the batch; only queue-store failures propagate.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_geocoder.core.config import Settings
from listing_geocoder.core.logging import component_logger
from listing_geocoder.lib.geocoder import (
    BaseGeocoder,
    Coordinates,
    GeocodeFailureKind,
    GeocodingError,
    MinIntervalLimiter,
    cache_lookup,
    cache_store,
    get_configured_geocoder,
    normalize_address,
    simplify_address,
)
from listing_geocoder.models.queue_item import QueueStatus
from listing_geocoder.services.listing_service import set_listing_coordinates
from listing_geocoder.services.queue_service import (
    SUPERSEDED_MESSAGE,
    QueueStorageError,
    claim_batch,
    mark_completed,
    mark_failed,
)

logger = component_logger("worker")


@dataclass
class GeocodeOutcome:
    """Result of resolving one address: coordinates or a classified failure."""

    coordinates: Coordinates | None = None
    matched_address: str | None = None
    failure_kind: GeocodeFailureKind | None = None
    reason: str | None = None
    cached: bool = False

    @classmethod
    def failure(cls, kind: GeocodeFailureKind, reason: str) -> "GeocodeOutcome":
        return cls(failure_kind=kind, reason=reason)

    @property
    def error_message(self) -> str:
        kind = self.failure_kind.value if self.failure_kind else "error"
        return f"{kind}: {self.reason}" if self.reason else kind


@dataclass
class ItemResult:
    """Per-item outcome reported by a batch or single run."""

    subject_id: int
    success: bool
    queue_id: int | None = None
    address: str | None = None
    coordinates: Coordinates | None = None
    reason: str | None = None
    failure_kind: GeocodeFailureKind | None = None
    status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.subject_id, "success": self.success}
        if self.queue_id is not None:
            data["queue_id"] = self.queue_id
        if self.address is not None:
            data["address"] = self.address
        if self.coordinates is not None:
            data["coordinates"] = self.coordinates.to_dict()
        if self.reason is not None:
            data["reason"] = self.reason
        if self.failure_kind is not None:
            data["failure_kind"] = self.failure_kind.value
        if self.status is not None:
            data["status"] = str(self.status)
        return data


@dataclass
class BatchSummary:
    """Outcome of one batch run."""

    results: list[ItemResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.processed - self.successful

    @property
    def message(self) -> str:
        if not self.results:
            return "No pending items in queue"
        return f"Batch update completed: {self.successful}/{self.processed} successful"


class GeocodeWorker:
    """Claims queue items and resolves them through a geocoding provider.

    Args:
        session_factory: Factory for database sessions.
        geocoder: Provider used for lookups.
        min_interval: Minimum seconds between provider calls; defaults to the
            provider's own ``rate_limit_delay``.
        timeout: Upper bound in seconds on each provider call.
        max_simplifications: Shortened address variants to try after the full one.
        use_cache: Consult and populate the geocoder cache.
        cache_ttl_days: Freshness window for cached results.
        limiter: Pre-built limiter (overrides ``min_interval``).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geocoder: BaseGeocoder,
        *,
        min_interval: float | None = None,
        timeout: float = 10.0,
        max_simplifications: int = 3,
        use_cache: bool = True,
        cache_ttl_days: int = 7,
        limiter: MinIntervalLimiter | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._geocoder = geocoder
        if limiter is None:
            interval = geocoder.rate_limit_delay if min_interval is None else min_interval
            limiter = MinIntervalLimiter(interval)
        self._limiter = limiter
        self._timeout = timeout
        self._max_simplifications = max_simplifications
        self._use_cache = use_cache
        self._cache_ttl_days = cache_ttl_days

    @property
    def geocoder(self) -> BaseGeocoder:
        return self._geocoder

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        geocoder: BaseGeocoder | None = None,
    ) -> "GeocodeWorker":
        """Build a worker from application settings."""
        geocoder = geocoder or get_configured_geocoder(settings)
        return cls(
            session_factory,
            geocoder,
            min_interval=max(settings.geocoder_min_interval, geocoder.rate_limit_delay),
            timeout=settings.geocoder_timeout,
            max_simplifications=settings.geocoder_max_simplifications,
            cache_ttl_days=settings.geocoder_cache_ttl_days,
        )

    async def geocode_address(self, session: AsyncSession, address: str) -> GeocodeOutcome:
        """Resolve an address, trying progressively simplified variants.

        Provider errors stop the attempt immediately (no tight retry loop);
        only an empty or invalid match moves on to the next variant.
        """
        normalized = normalize_address(address)
        if not normalized:
            return GeocodeOutcome.failure(GeocodeFailureKind.INVALID_INPUT, "Address is empty")

        provider = self._geocoder.provider_name
        if self._use_cache:
            cached = await cache_lookup(session, provider, normalized, ttl_days=self._cache_ttl_days)
            if cached is not None and cached.coordinates.is_valid:
                logger.debug("Geocoder cache hit")
                return GeocodeOutcome(
                    coordinates=cached.coordinates, matched_address=cached.matched_address, cached=True
                )

        for variant in simplify_address(normalized, self._max_simplifications):
            await self._limiter.wait()
            try:
                result = await asyncio.wait_for(self._geocoder.geocode(variant), timeout=self._timeout)
            except TimeoutError:
                return GeocodeOutcome.failure(GeocodeFailureKind.SERVICE_UNAVAILABLE, "Geocoding request timed out")
            except GeocodingError as e:
                return GeocodeOutcome.failure(e.kind, str(e))

            if result is None:
                continue
            if not result.coordinates.is_valid:
                logger.debug(f"Discarding invalid coordinates ({result.latitude}, {result.longitude})")
                continue

            if self._use_cache:
                await cache_store(session, provider, normalized, result)
            return GeocodeOutcome(coordinates=result.coordinates, matched_address=result.matched_address)

        return GeocodeOutcome.failure(GeocodeFailureKind.NO_RESULT, "No coordinates found")

    async def process_batch(self, batch_size: int = 10) -> BatchSummary:
        """Claim up to ``batch_size`` items and process each of them.

        Raises:
            QueueStorageError: If the queue store fails.  Items already claimed
                but not yet processed stay ``processing`` until the stale sweep.
        """
        summary = BatchSummary()
        async with self._session_factory() as session:
            items = await claim_batch(session, batch_size)
            if not items:
                logger.debug("No pending geocoding items")
                return summary

            # Snapshot before processing: a rollback expires every loaded item
            claimed = [(item.id, item.subject_id, item.address) for item in items]
            for item_id, subject_id, address in claimed:
                summary.results.append(await self._process_item(session, item_id, subject_id, address))

        logger.info(
            f"Geocoding batch finished: {summary.processed} processed, "
            f"{summary.successful} successful, {summary.failed} failed"
        )
        return summary

    async def _process_item(self, session: AsyncSession, item_id: int, subject_id: int, address: str) -> ItemResult:
        try:
            outcome = await self.geocode_address(session, address)
            if outcome.coordinates is not None:
                return await self._complete(session, item_id, subject_id, address, outcome.coordinates)

            permanent = outcome.failure_kind is not None and not outcome.failure_kind.is_retryable
            status = await mark_failed(session, item_id, outcome.error_message, permanent=permanent)
            logger.info(f"Geocoding item {item_id} failed ({outcome.failure_kind}), now {status}")
            return ItemResult(
                subject_id=subject_id,
                success=False,
                queue_id=item_id,
                address=address,
                reason=outcome.reason,
                failure_kind=outcome.failure_kind,
                status=status,
            )
        except QueueStorageError:
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            msg = f"Queue store failed while processing item {item_id}"
            raise QueueStorageError(msg) from e
        except Exception as e:
            logger.exception(f"Unexpected error while geocoding item {item_id}")
            await session.rollback()
            status = await mark_failed(session, item_id, f"Unexpected error: {e}")
            return ItemResult(
                subject_id=subject_id,
                success=False,
                queue_id=item_id,
                address=address,
                reason=f"Unexpected error: {e}",
                status=status,
            )

    async def _complete(
        self,
        session: AsyncSession,
        item_id: int,
        subject_id: int,
        address: str,
        coordinates: Coordinates,
    ) -> ItemResult:
        # Coordinates are written only if this worker still owns the item
        if not await mark_completed(session, item_id, commit=False):
            await session.commit()
            logger.info(f"Geocoding item {item_id} was superseded; result discarded")
            return ItemResult(
                subject_id=subject_id,
                success=False,
                queue_id=item_id,
                address=address,
                reason=SUPERSEDED_MESSAGE,
                status=QueueStatus.COMPLETED,
            )

        if not await set_listing_coordinates(session, subject_id, coordinates):
            logger.warning(f"Listing {subject_id} not found; queue item {item_id} completed without update")
        await session.commit()
        return ItemResult(
            subject_id=subject_id,
            success=True,
            queue_id=item_id,
            address=address,
            coordinates=coordinates,
            status=QueueStatus.COMPLETED,
        )

    async def process_single(self, subject_id: int, address: str) -> ItemResult:
        """Geocode one listing synchronously, bypassing the queue.

        Used for manual or administrative correction; the queue is not touched.
        """
        async with self._session_factory() as session:
            try:
                outcome = await self.geocode_address(session, address)
                coordinates = outcome.coordinates
                if coordinates is None:
                    await session.commit()
                    return ItemResult(
                        subject_id=subject_id,
                        success=False,
                        address=address,
                        reason=outcome.reason,
                        failure_kind=outcome.failure_kind,
                    )
                updated = await set_listing_coordinates(session, subject_id, coordinates)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                msg = f"Storage failed while geocoding listing {subject_id}"
                raise QueueStorageError(msg) from e

        if not updated:
            logger.warning(f"Listing {subject_id} not found; coordinates not stored")
        return ItemResult(
            subject_id=subject_id,
            success=True,
            address=address,
            coordinates=coordinates,
            reason=None if updated else "Listing not found",
        )

