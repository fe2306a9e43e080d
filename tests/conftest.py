"""Shared test fixtures for async database, sessions, and a scripted geocoder."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from listing_geocoder.core.config import Settings
from listing_geocoder.lib.geocoder import BaseGeocoder, GeocodingResult
from listing_geocoder.models import Base, Listing
from listing_geocoder.services.worker_service import GeocodeWorker


class FakeGeocoder(BaseGeocoder):
    """Scripted provider keyed by the exact query string.

    ``results`` maps a query to a GeocodingResult (or None), ``errors`` maps a
    query to an exception to raise.  Unknown queries resolve to ``default``.
    """

    def __init__(self, default: GeocodingResult | None = None) -> None:
        self.results: dict[str, GeocodingResult | None] = {}
        self.errors: dict[str, Exception] = {}
        self.default = default
        self.calls: list[str] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def geocode(self, address: str) -> GeocodingResult | None:
        self.calls.append(address)
        if address in self.errors:
            raise self.errors[address]
        return self.results.get(address, self.default)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        geocoder_min_interval=0,
        geocode_scheduler_enabled=False,
        service_token=None,
        log_level="DEBUG",
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine so each session gets its own connection."""
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def worker(session_factory: async_sessionmaker[AsyncSession], fake_geocoder: FakeGeocoder) -> GeocodeWorker:
    """Worker with no rate spacing and the scripted geocoder."""
    return GeocodeWorker(session_factory, fake_geocoder, min_interval=0, timeout=1.0)


@pytest.fixture
def make_listing(async_session: AsyncSession) -> Callable[..., Awaitable[Listing]]:
    """Factory that persists a listing and returns it."""

    async def _make(
        address: str | None = "10 Downing Street, London",
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> Listing:
        listing = Listing(post_address=address, latitude=latitude, longitude=longitude)
        async_session.add(listing)
        await async_session.commit()
        return listing

    return _make
