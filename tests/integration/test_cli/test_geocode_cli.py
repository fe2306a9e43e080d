"""Integration tests for the geocode and db CLI commands against a SQLite file."""

import asyncio
import json
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from typer.testing import CliRunner

from listing_geocoder.cli.app import app
from listing_geocoder.lib.geocoder import GeocodingResult
from listing_geocoder.models import Base, Listing, QueueItem, QueueStatus

runner = CliRunner()

LONDON = GeocodingResult(51.5034, -0.1276, matched_address="10 Downing Street, London")
REPO_ROOT = Path(__file__).resolve().parents[3]


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    monkeypatch.setenv("GEOCODER_MIN_INTERVAL", "0")
    monkeypatch.setenv("GEOCODE_SCHEDULER_ENABLED", "false")
    return url


def _run_sql(url: str, *rows: object) -> None:
    async def _setup() -> None:
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, expire_on_commit=False)
        async with factory() as session:
            session.add_all(rows)
            await session.commit()
        await engine.dispose()

    asyncio.run(_setup())


def _fetch(url: str, model: type) -> list:  # type: ignore[type-arg]
    async def _query() -> list:  # type: ignore[type-arg]
        engine = create_async_engine(url)
        async with async_sessionmaker(engine)() as session:
            rows = list((await session.execute(select(model).order_by(model.id))).scalars().all())
        await engine.dispose()
        return rows

    return asyncio.run(_query())


@pytest.fixture
def database(db_url: str) -> str:
    """Database with the schema created and no rows."""
    _run_sql(db_url)
    return db_url


@pytest.fixture
def scripted_geocoder(fake_geocoder) -> Generator:  # type: ignore[type-arg]
    fake_geocoder.results["10 downing street, london"] = LONDON
    with patch("listing_geocoder.services.worker_service.get_configured_geocoder", return_value=fake_geocoder):
        yield fake_geocoder


class TestStatsCommand:
    """Tests for geocode stats."""

    def test_stats_json(self, database: str) -> None:
        _run_sql(database, QueueItem(subject_id=1, address="A"), QueueItem(subject_id=2, address="B"))
        result = runner.invoke(app, ["geocode", "stats", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "pending": 2,
            "processing": 0,
            "failed_retryable": 0,
            "failed_permanent": 0,
            "completed_today": 0,
        }

    def test_stats_table(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "stats"])
        assert result.exit_code == 0, result.output
        assert "Geocoding queue:" in result.stdout
        assert "Pending:" in result.stdout

    def test_storage_failure_exits_1(self, db_url: str) -> None:
        # No tables created
        result = runner.invoke(app, ["geocode", "stats"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestBatchCommand:
    def test_batch_geocodes_pending_items(self, database: str, scripted_geocoder) -> None:  # type: ignore[no-untyped-def]
        _run_sql(database, Listing(post_address="10 Downing Street, London"))
        _run_sql(database, QueueItem(subject_id=1, address="10 Downing Street, London"))

        result = runner.invoke(app, ["geocode", "batch", "--batch-size", "5"])

        assert result.exit_code == 0, result.output
        assert "Batch update completed: 1/1 successful" in result.stdout
        assert "listing 1: 51.5034, -0.1276" in result.stdout
        listing = _fetch(database, Listing)[0]
        assert (listing.latitude, listing.longitude) == (51.5034, -0.1276)
        assert _fetch(database, QueueItem)[0].status == QueueStatus.COMPLETED

    def test_empty_queue(self, database: str, scripted_geocoder) -> None:  # type: ignore[no-untyped-def]
        result = runner.invoke(app, ["geocode", "batch"])
        assert result.exit_code == 0, result.output
        assert "No pending items in queue" in result.stdout

    def test_batch_size_out_of_range(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "batch", "--batch-size", "0"])
        assert result.exit_code == 2


class TestSingleCommand:
    """Tests for geocode single."""

    def test_single_success(self, database: str, scripted_geocoder) -> None:  # type: ignore[no-untyped-def]
        _run_sql(database, Listing(post_address="10 Downing Street, London"))
        result = runner.invoke(app, ["geocode", "single", "1", "10 Downing Street, London"])
        assert result.exit_code == 0, result.output
        assert "Listing 1: 51.5034, -0.1276" in result.stdout
        assert _fetch(database, QueueItem) == []

    def test_single_no_result_exits_1(self, database: str, scripted_geocoder) -> None:  # type: ignore[no-untyped-def]
        result = runner.invoke(app, ["geocode", "single", "1", "Nowhere"])
        assert result.exit_code == 1
        assert "geocoding failed" in result.output

    def test_single_empty_address(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "single", "1", "   "])
        assert result.exit_code == 2


class TestMaintenanceCommands:
    def test_cleanup(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "cleanup", "--days", "7"])
        assert result.exit_code == 0, result.output
        assert "Deleted 0 queue item(s) older than 7 days" in result.stdout

    def test_reset_stale(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "reset-stale"])
        assert result.exit_code == 0, result.output
        assert "Reset 0 stale item(s) to pending" in result.stdout

    def test_backfill(self, database: str) -> None:
        _run_sql(
            database,
            Listing(post_address="10 Downing Street, London"),
            Listing(post_address=None),
            Listing(post_address="Located", latitude=1.0, longitude=2.0),
        )
        result = runner.invoke(app, ["geocode", "backfill"])
        assert result.exit_code == 0, result.output
        assert "Queued 1 listing(s) for geocoding" in result.stdout
        items = _fetch(database, QueueItem)
        assert [(i.subject_id, i.status) for i in items] == [(1, QueueStatus.PENDING)]

    def test_purge_cache(self, database: str) -> None:
        result = runner.invoke(app, ["geocode", "purge-cache"])
        assert result.exit_code == 0, result.output
        assert "Purged 0 cache entries" in result.stdout

    def test_run_scheduler_once(self, database: str, scripted_geocoder) -> None:  # type: ignore[no-untyped-def]
        result = runner.invoke(app, ["geocode", "run-scheduler", "--once"])
        assert result.exit_code == 0, result.output
        assert "No pending items in queue" in result.stdout


class TestDbCommands:
    """Tests for the alembic-backed db commands."""

    def test_upgrade_creates_tables(self, db_url: str) -> None:
        result = runner.invoke(app, ["db", "upgrade", "--config", str(REPO_ROOT / "alembic.ini")])
        assert result.exit_code == 0, result.output

        stats = runner.invoke(app, ["geocode", "stats", "--json"])
        assert stats.exit_code == 0, stats.output
        assert json.loads(stats.stdout)["pending"] == 0

    def test_missing_config(self, db_url: str, tmp_path: Path) -> None:
        result = runner.invoke(app, ["db", "current", "--config", str(tmp_path / "missing.ini")])
        assert result.exit_code == 1
        assert "Alembic config not found" in result.output
