"""Geocoding queue CLI commands: batch runs, maintenance, and the scheduler loop."""

import asyncio
import contextlib
import json
import signal
from collections.abc import AsyncGenerator
from datetime import timedelta

import typer

from listing_geocoder.core.config import Settings

geocode_app = typer.Typer()


@contextlib.asynccontextmanager
async def _database() -> AsyncGenerator[Settings]:
    """Initialize the engine from settings for the duration of one command."""
    from listing_geocoder.core.config import get_settings
    from listing_geocoder.core.database import dispose_engine, init_engine

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    try:
        yield settings
    finally:
        await dispose_engine()


def _run(coro) -> None:  # type: ignore[no-untyped-def]
    """Run a command coroutine, turning queue-store failures into exit code 1."""
    from listing_geocoder.services.queue_service import QueueStorageError

    try:
        asyncio.run(coro)
    except QueueStorageError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@geocode_app.command("batch")
def batch(
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, max=1000, help="Items to claim"),
) -> None:
    """Claim and geocode one batch of pending listings."""
    _run(_batch_impl(batch_size))


@geocode_app.command("stats")
def stats(
    as_json: bool = typer.Option(False, "--json", help="Print statistics as JSON"),  # noqa: FBT001
) -> None:
    """Show queue statistics."""
    _run(_stats_impl(as_json))


@geocode_app.command("cleanup")
def cleanup(
    days: int | None = typer.Option(None, "--days", min=0, help="Delete finished items older than this"),
) -> None:
    """Delete completed and permanently failed queue items."""
    _run(_cleanup_impl(days))


@geocode_app.command("reset-stale")
def reset_stale(
    minutes: int | None = typer.Option(None, "--minutes", min=1, help="Processing age that counts as stale"),
) -> None:
    """Return items stuck in processing to pending."""
    _run(_reset_stale_impl(minutes))


@geocode_app.command("single")
def single(
    listing_id: int = typer.Argument(..., help="Listing id"),
    address: str = typer.Argument(..., help="Address to geocode"),
) -> None:
    """Geocode one listing immediately, bypassing the queue."""
    if not address.strip():
        typer.echo("Error: address must not be empty", err=True)
        raise typer.Exit(code=2)
    _run(_single_impl(listing_id, address.strip()))


@geocode_app.command("backfill")
def backfill(
    limit: int | None = typer.Option(None, "--limit", min=1, help="Maximum listings to queue"),
) -> None:
    """Queue every listing that has an address but no coordinates."""
    _run(_backfill_impl(limit))


@geocode_app.command("purge-cache")
def purge_cache(
    ttl_days: int | None = typer.Option(None, "--ttl-days", min=0, help="Keep cache entries newer than this"),
) -> None:
    """Delete expired geocoder cache entries."""
    _run(_purge_cache_impl(ttl_days))


@geocode_app.command("run-scheduler")
def run_scheduler(
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit"),  # noqa: FBT001
) -> None:
    """Run the periodic geocoding scheduler in the foreground until interrupted."""
    _run(_run_scheduler_impl(once))


async def _batch_impl(batch_size: int | None) -> None:
    from listing_geocoder.core.database import get_session_factory
    from listing_geocoder.services.scheduler_service import build_scheduler

    async with _database() as settings:
        scheduler = build_scheduler(settings, get_session_factory())
        summary = await scheduler.run_batch(batch_size)

    typer.echo(summary.message)
    for result in summary.results:
        if result.success and result.coordinates is not None:
            typer.echo(f"  listing {result.subject_id}: {result.coordinates.latitude}, {result.coordinates.longitude}")
        else:
            typer.echo(f"  listing {result.subject_id}: failed ({result.reason})")


async def _stats_impl(as_json: bool) -> None:
    from listing_geocoder.core.database import session_scope
    from listing_geocoder.services.queue_service import get_stats

    async with _database():
        async with session_scope() as session:
            queue_stats = await get_stats(session)

    if as_json:
        typer.echo(json.dumps(queue_stats.to_dict()))
        return
    typer.echo("Geocoding queue:")
    typer.echo(f"  Pending:           {queue_stats.pending}")
    typer.echo(f"  Processing:        {queue_stats.processing}")
    typer.echo(f"  Failed (retrying): {queue_stats.failed_retryable}")
    typer.echo(f"  Failed (final):    {queue_stats.failed_permanent}")
    typer.echo(f"  Completed today:   {queue_stats.completed_today}")


async def _cleanup_impl(days: int | None) -> None:
    from listing_geocoder.core.database import session_scope
    from listing_geocoder.services.queue_service import cleanup as cleanup_queue

    async with _database() as settings:
        days = settings.geocode_cleanup_days if days is None else days
        async with session_scope() as session:
            deleted = await cleanup_queue(session, days)
    typer.echo(f"Deleted {deleted} queue item(s) older than {days} days")


async def _reset_stale_impl(minutes: int | None) -> None:
    from listing_geocoder.core.database import session_scope
    from listing_geocoder.services.queue_service import reset_stale as reset_stale_items

    async with _database() as settings:
        minutes = settings.geocode_stale_after_minutes if minutes is None else minutes
        async with session_scope() as session:
            count = await reset_stale_items(session, timedelta(minutes=minutes))
    typer.echo(f"Reset {count} stale item(s) to pending")


async def _single_impl(listing_id: int, address: str) -> None:
    from listing_geocoder.core.database import get_session_factory
    from listing_geocoder.services.scheduler_service import build_scheduler

    async with _database() as settings:
        scheduler = build_scheduler(settings, get_session_factory())
        result = await scheduler.process_one(listing_id, address)

    if result.success and result.coordinates is not None:
        typer.echo(f"Listing {listing_id}: {result.coordinates.latitude}, {result.coordinates.longitude}")
        if result.reason:
            typer.echo(f"  Note: {result.reason}")
        return
    typer.echo(f"Listing {listing_id}: geocoding failed ({result.failure_kind}: {result.reason})", err=True)
    raise typer.Exit(code=1)


async def _backfill_impl(limit: int | None) -> None:
    from listing_geocoder.core.database import session_scope
    from listing_geocoder.services.enqueue_hook import backfill as backfill_listings

    async with _database() as settings:
        async with session_scope() as session:
            queued = await backfill_listings(session, max_retries=settings.geocode_max_retries, limit=limit)
    typer.echo(f"Queued {queued} listing(s) for geocoding")


async def _purge_cache_impl(ttl_days: int | None) -> None:
    from listing_geocoder.core.database import session_scope
    from listing_geocoder.lib.geocoder import cache_purge

    async with _database() as settings:
        ttl_days = settings.geocoder_cache_ttl_days if ttl_days is None else ttl_days
        async with session_scope() as session:
            deleted = await cache_purge(session, ttl_days=ttl_days)
    typer.echo(f"Purged {deleted} cache entr{'y' if deleted == 1 else 'ies'}")


async def _run_scheduler_impl(once: bool) -> None:
    from listing_geocoder.core.database import get_session_factory
    from listing_geocoder.services.scheduler_service import build_scheduler

    async with _database() as settings:
        scheduler = build_scheduler(settings, get_session_factory())
        if once:
            summary = await scheduler.tick()
            typer.echo(summary.message if summary is not None else "Batch already running; tick skipped")
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop.set)

        typer.echo(f"Scheduler running every {scheduler.interval}s; press Ctrl+C to stop")
        scheduler.start()
        try:
            await stop.wait()
        finally:
            await scheduler.stop()
