"""Listing collaborator: reads listings and writes their coordinate fields.

The geocoding worker is the only writer of coordinates; the enqueue hook may
only clear them when an address changes.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from listing_geocoder.lib.geocoder.coordinates import Coordinates
from listing_geocoder.models.listing import Listing


async def get_listing(session: AsyncSession, listing_id: int) -> Listing | None:
    """Load a listing by id."""
    result = await session.execute(
        select(Listing).where(Listing.id == listing_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def set_listing_coordinates(session: AsyncSession, listing_id: int, coordinates: Coordinates) -> bool:
    """Write coordinates onto a listing. Does not commit.

    Returns:
        True if the listing exists and was updated.
    """
    result = await session.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(latitude=coordinates.latitude, longitude=coordinates.longitude)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def clear_listing_coordinates(session: AsyncSession, listing_id: int) -> bool:
    """Reset a listing's coordinates to NULL. Does not commit."""
    result = await session.execute(
        update(Listing)
        .where(Listing.id == listing_id)
        .values(latitude=None, longitude=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
