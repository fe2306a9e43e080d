"""Per-provider database caching layer for geocoding results."""

from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from listing_geocoder.lib.geocoder.base import GeocodingResult
from listing_geocoder.models.base import utcnow
from listing_geocoder.models.geocoder_cache import GeocoderCache

DEFAULT_TTL_DAYS = 7


async def cache_lookup(
    session: AsyncSession,
    provider: str,
    normalized_address: str,
    *,
    ttl_days: int = DEFAULT_TTL_DAYS,
) -> GeocodingResult | None:
    """Look up a cached geocoding result that is still within its TTL.

    Args:
        session: Database session.
        provider: Provider name.
        normalized_address: Normalized address string (cache key).
        ttl_days: Maximum age of a usable entry.

    Returns:
        GeocodingResult if found and fresh, None on cache miss.
    """
    cutoff = utcnow() - timedelta(days=ttl_days)
    result = await session.execute(
        select(GeocoderCache).where(
            GeocoderCache.provider == provider,
            GeocoderCache.normalized_address == normalized_address,
            GeocoderCache.cached_at >= cutoff,
        )
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        return None

    return GeocodingResult(
        latitude=entry.latitude,
        longitude=entry.longitude,
        matched_address=entry.matched_address,
        raw_response=entry.raw_response,
    )


async def cache_store(
    session: AsyncSession,
    provider: str,
    normalized_address: str,
    result: GeocodingResult,
) -> None:
    """Store (or refresh) a geocoding result in the cache.

    ON CONFLICT (provider, normalized_address) DO UPDATE, so workers caching
    the same address at the same time overwrite each other instead of failing.
    Does not commit; the caller owns the transaction.

    Args:
        session: Database session.
        provider: Provider name.
        normalized_address: Normalized address string (cache key).
        result: Geocoding result to cache.
    """
    insert = sqlite_insert if session.get_bind().dialect.name == "sqlite" else pg_insert
    values = {
        "latitude": result.latitude,
        "longitude": result.longitude,
        "matched_address": result.matched_address,
        "raw_response": result.raw_response,
        "cached_at": utcnow(),
    }
    stmt = (
        insert(GeocoderCache)
        .values(provider=provider, normalized_address=normalized_address, **values)
        .on_conflict_do_update(index_elements=["provider", "normalized_address"], set_=values)
    )
    await session.execute(stmt)


async def cache_purge(session: AsyncSession, *, ttl_days: int = DEFAULT_TTL_DAYS) -> int:
    """Delete cache entries older than the TTL.

    Returns:
        Number of deleted entries.
    """
    cutoff = utcnow() - timedelta(days=ttl_days)
    result = await session.execute(delete(GeocoderCache).where(GeocoderCache.cached_at < cutoff))
    await session.commit()
    return result.rowcount or 0
