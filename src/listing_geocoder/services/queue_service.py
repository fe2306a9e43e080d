"""Queue store: durable geocoding work items with atomic claim and transitions.

Every state change is a single conditional ``UPDATE`` guarded by the status
the item is expected to be in, so concurrent workers, repeated calls and
crashed processes can never push an item through an illegal transition.
"""

import contextlib
import functools
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, TypeVar

from loguru import logger
from sqlalchemy import ColumnElement, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from listing_geocoder.models.base import utcnow
from listing_geocoder.models.queue_item import ACTIVE_STATUSES, TERMINAL_STATUSES, QueueItem, QueueStatus

DEFAULT_MAX_RETRIES = 3
DEFAULT_STALE_AFTER = timedelta(hours=1)
SUPERSEDED_MESSAGE = "Superseded by address change"
_MAX_ERROR_LENGTH = 2000

P = ParamSpec("P")
R = TypeVar("R")


class QueueConflictError(Exception):
    """Raised when a subject already has an active (pending/processing) item.

    Args:
        subject_id: Listing the insert was attempted for.
    """

    def __init__(self, subject_id: int) -> None:
        self.subject_id = subject_id
        super().__init__(f"Subject {subject_id} already has an active geocoding item")


class QueueStorageError(Exception):
    """Raised when the queue store cannot be reached or a statement fails."""


@dataclass
class QueueStats:
    """Snapshot of queue health.

    ``failed_retryable`` counts pending items that already failed at least
    once; they are included in ``pending`` as well.

    ``completed_today`` counts geocoded items only; items retired by an
    address change or removal keep their reason in ``last_error`` and are
    left out.
    """

    pending: int = 0
    processing: int = 0
    failed_retryable: int = 0
    failed_permanent: int = 0
    completed_today: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _storage_errors(func_: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Roll back and re-raise SQLAlchemy failures as QueueStorageError.

    The wrapped coroutine must take the session as its first argument.
    """

    @functools.wraps(func_)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func_(*args, **kwargs)
        except SQLAlchemyError as e:
            session = args[0]
            if isinstance(session, AsyncSession):
                with contextlib.suppress(SQLAlchemyError):
                    await session.rollback()
            logger.error(f"Queue store failure in {func_.__name__}: {e.__class__.__name__}")
            msg = f"Queue store operation {func_.__name__} failed: {e.__class__.__name__}"
            raise QueueStorageError(msg) from e

    return wrapper


def _truncate(message: str) -> str:
    return message if len(message) <= _MAX_ERROR_LENGTH else message[: _MAX_ERROR_LENGTH - 3] + "..."


@_storage_errors
async def get_item(session: AsyncSession, item_id: int) -> QueueItem | None:
    """Load a queue item by id, refreshing any stale identity-map copy."""
    result = await session.execute(
        select(QueueItem).where(QueueItem.id == item_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@_storage_errors
async def get_active_item(session: AsyncSession, subject_id: int) -> QueueItem | None:
    """Return the pending or processing item for a subject, if any."""
    result = await session.execute(
        select(QueueItem)
        .where(QueueItem.subject_id == subject_id, QueueItem.status.in_(ACTIVE_STATUSES))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _insert(session: AsyncSession, subject_id: int, address: str, max_retries: int) -> QueueItem:
    item = QueueItem(
        subject_id=subject_id,
        address=address,
        status=QueueStatus.PENDING,
        retry_count=0,
        max_retries=max_retries,
    )
    session.add(item)
    await session.flush()
    return item


@_storage_errors
async def insert_pending(
    session: AsyncSession,
    subject_id: int,
    address: str,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> QueueItem:
    """Create a new pending item for a subject.

    Args:
        session: Database session.
        subject_id: Listing id.
        address: Address text to geocode.
        max_retries: Failed attempts allowed before the item is permanently failed.

    Returns:
        The created QueueItem.

    Raises:
        ValueError: If the address is blank or max_retries is not positive.
        QueueConflictError: If the subject already has an active item; use supersede().
    """
    address = (address or "").strip()
    if not address:
        msg = "address must not be empty"
        raise ValueError(msg)
    if max_retries < 1:
        msg = f"max_retries must be >= 1, got {max_retries}"
        raise ValueError(msg)

    if await get_active_item(session, subject_id) is not None:
        raise QueueConflictError(subject_id)

    try:
        item = await _insert(session, subject_id, address, max_retries)
        await session.commit()
    except IntegrityError as e:
        # Lost a race against another writer; the partial unique index caught it
        await session.rollback()
        raise QueueConflictError(subject_id) from e

    logger.debug(f"Queued geocoding item {item.id} for subject {subject_id}")
    return item


@_storage_errors
async def supersede(
    session: AsyncSession,
    subject_id: int,
    new_address: str,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> QueueItem:
    """Point the subject's active item at a new address, or enqueue one.

    A pending item is rewritten in place with its retry count reset.  A
    processing item is never mutated (its address is fixed once claimed);
    it is retired as superseded and a fresh pending item takes its place.

    Returns:
        The subject's active QueueItem after the change.
    """
    new_address = (new_address or "").strip()
    if not new_address:
        msg = "address must not be empty"
        raise ValueError(msg)

    active = await get_active_item(session, subject_id)
    if active is None:
        return await insert_pending(session, subject_id, new_address, max_retries=max_retries)

    now = utcnow()
    if active.status == QueueStatus.PENDING:
        result = await session.execute(
            update(QueueItem)
            .where(QueueItem.id == active.id, QueueItem.status == QueueStatus.PENDING)
            .values(address=new_address, retry_count=0, last_error=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            await session.commit()
            logger.debug(f"Superseded address of pending item {active.id} for subject {subject_id}")
            refreshed = await get_item(session, active.id)
            return refreshed or active
        # Claimed between our read and write; fall through to the in-flight path

    await session.execute(
        update(QueueItem)
        .where(QueueItem.id == active.id, QueueItem.status.in_(ACTIVE_STATUSES))
        .values(status=QueueStatus.COMPLETED, completed_at=now, last_error=SUPERSEDED_MESSAGE, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        item = await _insert(session, subject_id, new_address, max_retries)
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise QueueConflictError(subject_id) from e

    logger.debug(f"Retired in-flight item {active.id}; queued {item.id} for subject {subject_id}")
    return item


@_storage_errors
async def cancel_active(session: AsyncSession, subject_id: int, reason: str = SUPERSEDED_MESSAGE) -> int:
    """Retire the subject's active item without queueing a replacement.

    Returns:
        Number of retired items (0 or 1).
    """
    now = utcnow()
    result = await session.execute(
        update(QueueItem)
        .where(QueueItem.subject_id == subject_id, QueueItem.status.in_(ACTIVE_STATUSES))
        .values(status=QueueStatus.COMPLETED, completed_at=now, last_error=_truncate(reason), updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0


@_storage_errors
async def claim_batch(session: AsyncSession, limit: int) -> list[QueueItem]:
    """Atomically claim up to ``limit`` of the oldest pending items.

    One statement selects the candidates (``FOR UPDATE SKIP LOCKED`` where the
    engine supports it) and flips them to ``processing``.  The status guard on
    the outer ``UPDATE`` keeps the claim exclusive on engines without row locks.

    Args:
        session: Database session.
        limit: Maximum number of items to claim.

    Returns:
        Claimed items in ``created_at`` order; empty when nothing is pending.
    """
    if limit <= 0:
        return []

    now = utcnow()
    candidates = (
        select(QueueItem.id)
        .where(QueueItem.status == QueueStatus.PENDING)
        .order_by(QueueItem.created_at, QueueItem.id)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    result = await session.execute(
        update(QueueItem)
        .where(QueueItem.id.in_(candidates), QueueItem.status == QueueStatus.PENDING)
        .values(status=QueueStatus.PROCESSING, last_attempt_at=now, updated_at=now)
        .returning(QueueItem)
        .execution_options(populate_existing=True)
    )
    items = list(result.scalars().all())
    await session.commit()

    items.sort(key=lambda i: (i.created_at, i.id))
    if items:
        logger.info(f"Claimed {len(items)} geocoding item(s)")
    return items


@_storage_errors
async def mark_completed(session: AsyncSession, item_id: int, *, commit: bool = True) -> bool:
    """Transition an active item to ``completed``.

    Args:
        session: Database session.
        item_id: Queue item id.
        commit: Commit immediately; pass False to bundle further writes into
            the same transaction.

    Returns:
        True if the item changed state, False if it was already terminal
        (repeated completion, or superseded while in flight).
    """
    now = utcnow()
    result = await session.execute(
        update(QueueItem)
        .where(QueueItem.id == item_id, QueueItem.status.in_(ACTIVE_STATUSES))
        .values(status=QueueStatus.COMPLETED, completed_at=now, last_error=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if commit:
        await session.commit()
    return result.rowcount == 1


@_storage_errors
async def mark_failed(
    session: AsyncSession,
    item_id: int,
    error_message: str,
    *,
    permanent: bool = False,
    commit: bool = True,
) -> QueueStatus | None:
    """Record a failed attempt.

    Increments ``retry_count`` (never past ``max_retries``).  The item goes
    back to ``pending`` while attempts remain, otherwise to ``failed``.
    ``permanent=True`` skips straight to ``failed``.

    Returns:
        The item's new status, or None if the item was missing or already terminal.
    """
    next_count = case(
        (QueueItem.retry_count < QueueItem.max_retries, QueueItem.retry_count + 1),
        else_=QueueItem.retry_count,
    )
    if permanent:
        next_status = QueueStatus.FAILED.value
    else:
        next_status = case(
            (QueueItem.retry_count + 1 >= QueueItem.max_retries, QueueStatus.FAILED.value),
            else_=QueueStatus.PENDING.value,
        )

    result = await session.execute(
        update(QueueItem)
        .where(QueueItem.id == item_id, QueueItem.status.in_(ACTIVE_STATUSES))
        .values(
            retry_count=next_count,
            status=next_status,
            last_error=_truncate(error_message),
            completed_at=None,
            updated_at=utcnow(),
        )
        .returning(QueueItem.status)
    )
    new_status = result.scalar_one_or_none()
    if commit:
        await session.commit()
    if new_status is None:
        return None
    if new_status == QueueStatus.FAILED:
        logger.warning(f"Geocoding item {item_id} permanently failed")
    return QueueStatus(new_status)


@_storage_errors
async def reset_stale(session: AsyncSession, older_than: timedelta = DEFAULT_STALE_AFTER) -> int:
    """Return items stuck in ``processing`` to ``pending`` (staleness sweep).

    The retry count is left untouched: the orphaned attempt never reported
    an outcome.

    Returns:
        Number of items reset.
    """
    now = utcnow()
    cutoff = now - older_than
    result = await session.execute(
        update(QueueItem)
        .where(
            QueueItem.status == QueueStatus.PROCESSING,
            (QueueItem.last_attempt_at < cutoff) | QueueItem.last_attempt_at.is_(None),
        )
        .values(status=QueueStatus.PENDING, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    count = result.rowcount or 0
    if count:
        logger.warning(f"Reset {count} stale processing item(s) to pending")
    return count


def _start_of_day(moment: datetime) -> datetime:
    return moment.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)


@_storage_errors
async def get_stats(session: AsyncSession) -> QueueStats:
    """Count items per queue state."""

    def _count(condition: ColumnElement[bool]) -> ColumnElement[int]:
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    today = _start_of_day(utcnow())
    result = await session.execute(
        select(
            _count(QueueItem.status == QueueStatus.PENDING),
            _count(QueueItem.status == QueueStatus.PROCESSING),
            _count((QueueItem.status == QueueStatus.PENDING) & (QueueItem.retry_count > 0)),
            _count(QueueItem.status == QueueStatus.FAILED),
            _count(
                (QueueItem.status == QueueStatus.COMPLETED)
                & (QueueItem.completed_at >= today)
                & QueueItem.last_error.is_(None)
            ),
        )
    )
    pending, processing, failed_retryable, failed_permanent, completed_today = result.one()
    return QueueStats(
        pending=int(pending),
        processing=int(processing),
        failed_retryable=int(failed_retryable),
        failed_permanent=int(failed_permanent),
        completed_today=int(completed_today),
    )


@_storage_errors
async def cleanup(session: AsyncSession, older_than_days: int = 30) -> int:
    """Delete completed and permanently failed items not touched for ``older_than_days``.

    Returns:
        Number of deleted items.
    """
    if older_than_days < 0:
        msg = f"older_than_days must be >= 0, got {older_than_days}"
        raise ValueError(msg)

    cutoff = utcnow() - timedelta(days=older_than_days)
    result = await session.execute(
        delete(QueueItem)
        .where(QueueItem.status.in_(TERMINAL_STATUSES), QueueItem.updated_at < cutoff)
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    deleted = result.rowcount or 0
    logger.info(f"Cleaned up {deleted} old geocoding queue item(s)")
    return deleted
