"""Enqueue hook: reacts to listing writes by queueing geocoding work.

Called explicitly by the listing write path after a listing is created or its
address changes.
"""

from loguru import logger
from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_geocoder.lib.geocoder.coordinates import Coordinates
from listing_geocoder.models.listing import Listing
from listing_geocoder.models.queue_item import ACTIVE_STATUSES, QueueItem
from listing_geocoder.services.listing_service import clear_listing_coordinates
from listing_geocoder.services.queue_service import (
    DEFAULT_MAX_RETRIES,
    QueueConflictError,
    cancel_active,
    get_active_item,
    insert_pending,
    supersede,
)

_REQUEUE_ATTEMPTS = 2


def _clean(address: str | None) -> str:
    return (address or "").strip()


async def _requeue(
    session: AsyncSession,
    listing_id: int,
    address: str,
    *,
    max_retries: int,
    clear_coordinates: bool,
) -> QueueItem | None:
    """Supersede the listing's work, absorbing races with concurrent writers.

    A conflict rolls back the session, so coordinate clearing is repeated on
    every attempt.  If another writer keeps winning, its active item is returned.
    """
    for _ in range(_REQUEUE_ATTEMPTS):
        if clear_coordinates:
            await clear_listing_coordinates(session, listing_id)
        try:
            return await supersede(session, listing_id, address, max_retries=max_retries)
        except QueueConflictError:
            logger.debug(f"Concurrent enqueue for listing {listing_id}; retrying")

    if clear_coordinates:
        await clear_listing_coordinates(session, listing_id)
        await session.commit()
    return await get_active_item(session, listing_id)


async def on_listing_created(
    session: AsyncSession,
    listing_id: int,
    address: str | None,
    coordinates: Coordinates | None = None,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> QueueItem | None:
    """Queue a new listing for geocoding if it has an address but no usable coordinates.

    Returns:
        The active QueueItem, or None if nothing needed queueing.
    """
    cleaned = _clean(address)
    if not cleaned:
        return None
    if coordinates is not None and coordinates.is_valid:
        return None

    try:
        item = await insert_pending(session, listing_id, cleaned, max_retries=max_retries)
    except QueueConflictError:
        item = await _requeue(session, listing_id, cleaned, max_retries=max_retries, clear_coordinates=False)
    logger.info(f"Queued geocoding for new listing {listing_id}")
    return item


async def on_listing_updated(
    session: AsyncSession,
    listing_id: int,
    old_address: str | None,
    new_address: str | None,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> QueueItem | None:
    """Re-queue geocoding when a listing's address changes.

    Stored coordinates are cleared in the same transaction so they never
    describe a stale address.  Removing the address retires any outstanding
    work without queueing more.

    Returns:
        The active QueueItem after the change, or None.
    """
    old_cleaned = _clean(old_address)
    new_cleaned = _clean(new_address)
    if old_cleaned == new_cleaned:
        return None

    if not new_cleaned:
        await clear_listing_coordinates(session, listing_id)
        retired = await cancel_active(session, listing_id, reason="Address removed")
        logger.info(f"Address removed from listing {listing_id}; retired {retired} queue item(s)")
        return None

    item = await _requeue(session, listing_id, new_cleaned, max_retries=max_retries, clear_coordinates=True)
    logger.info(f"Address changed for listing {listing_id}; re-queued geocoding")
    return item


async def backfill(
    session: AsyncSession,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    limit: int | None = None,
) -> int:
    """Queue every listing that has an address but no usable coordinates.

    Listings with the ``(0, 0)`` sentinel count as missing coordinates.
    Listings that already have active work are skipped.

    Returns:
        Number of items queued.
    """
    has_active = exists().where(QueueItem.subject_id == Listing.id, QueueItem.status.in_(ACTIVE_STATUSES))
    missing_coordinates = or_(
        Listing.latitude.is_(None),
        Listing.longitude.is_(None),
        and_(Listing.latitude == 0, Listing.longitude == 0),
    )
    query = (
        select(Listing.id, Listing.post_address)
        .where(Listing.post_address.is_not(None), missing_coordinates, ~has_active)
        .order_by(Listing.id)
    )
    if limit is not None:
        query = query.limit(limit)

    rows = (await session.execute(query)).all()
    queued = 0
    for listing_id, address in rows:
        cleaned = _clean(address)
        if not cleaned:
            continue
        try:
            await insert_pending(session, listing_id, cleaned, max_retries=max_retries)
        except QueueConflictError:
            continue
        queued += 1

    logger.info(f"Backfill queued {queued} listing(s) for geocoding")
    return queued
