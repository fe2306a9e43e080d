"""Integration tests for the geocoding operations endpoint."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_geocoder.core.config import Settings, get_settings
from listing_geocoder.lib.geocoder import GeocodingResult
from listing_geocoder.main import create_app
from listing_geocoder.models import Listing, QueueStatus
from listing_geocoder.services.listing_service import get_listing
from listing_geocoder.services.queue_service import QueueStorageError, get_item, insert_pending
from listing_geocoder.services.scheduler_service import GeocodeScheduler, build_scheduler

URL = "/api/v1/geocoding/update-post-coordinates"
LONDON = GeocodingResult(51.5034, -0.1276, matched_address="10 Downing Street, London")

MakeListing = Callable[..., Awaitable[Listing]]


def _build_app(settings: Settings, scheduler: GeocodeScheduler) -> FastAPI:
    with patch("listing_geocoder.main.get_settings", return_value=settings):
        app = create_app()
    app.state.scheduler = scheduler
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def scheduler(settings: Settings, session_factory: async_sessionmaker[AsyncSession], fake_geocoder) -> GeocodeScheduler:
    return build_scheduler(settings, session_factory, fake_geocoder)


@pytest.fixture
async def client(settings: Settings, scheduler: GeocodeScheduler) -> AsyncGenerator[AsyncClient]:
    app = _build_app(settings, scheduler)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


class TestBatchUpdate:
    """Tests for BATCH_UPDATE."""

    async def test_empty_queue(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "BATCH_UPDATE"})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "No pending items in queue"
        assert body["processed"] == 0
        assert body["results"] == []

    async def test_processes_queue(
        self, client: AsyncClient, fake_geocoder, async_session: AsyncSession, make_listing: MakeListing
    ) -> None:
        fake_geocoder.results["10 downing street, london"] = LONDON
        listing = await make_listing("10 Downing Street, London")
        missing = await make_listing("Nowhere")
        item = await insert_pending(async_session, listing.id, "10 Downing Street, London")
        await insert_pending(async_session, missing.id, "Nowhere")

        response = await client.post(URL, json={"operation": "BATCH_UPDATE", "batch_size": 5})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Batch update completed: 1/2 successful"
        assert (body["processed"], body["successful"], body["failed"]) == (2, 1, 1)
        first, second = body["results"]
        assert first["id"] == listing.id
        assert first["success"] is True
        assert first["coordinates"] == {"latitude": 51.5034, "longitude": -0.1276}
        assert second["success"] is False
        assert second["failure_kind"] == "no_result"
        assert second["status"] == "pending"

        stored = await get_item(async_session, item.id)
        assert stored is not None
        assert stored.status == QueueStatus.COMPLETED

    async def test_invalid_batch_size(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "BATCH_UPDATE", "batch_size": 0})
        assert response.status_code == 400
        assert "error" in response.json()


class TestStats:
    async def test_stats(self, client: AsyncClient, async_session: AsyncSession) -> None:
        await insert_pending(async_session, 1, "A")
        response = await client.post(URL, json={"operation": "STATS"})
        assert response.status_code == 200
        assert response.json() == {
            "message": "Queue statistics",
            "stats": {
                "pending": 1,
                "processing": 0,
                "failed_retryable": 0,
                "failed_permanent": 0,
                "completed_today": 0,
            },
        }


class TestSingle:
    """Tests for SINGLE and the implicit single-listing body."""

    @pytest.mark.parametrize("operation", ["SINGLE", None])
    async def test_single_updates_listing(
        self,
        client: AsyncClient,
        fake_geocoder,
        async_session: AsyncSession,
        make_listing: MakeListing,
        operation: str | None,
    ) -> None:
        fake_geocoder.default = LONDON
        listing = await make_listing("10 Downing Street, London")
        payload: dict[str, object] = {"id": listing.id, "post_address": "10 Downing Street, London"}
        if operation is not None:
            payload["operation"] = operation

        response = await client.post(URL, json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == listing.id
        assert body["success"] is True
        assert body["coordinates"]["latitude"] == 51.5034
        stored = await get_listing(async_session, listing.id)
        assert stored is not None
        assert stored.latitude == 51.5034

    async def test_single_failure_is_reported(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "SINGLE", "id": 3, "post_address": "Nowhere"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["failure_kind"] == "no_result"

    async def test_single_missing_address(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "SINGLE", "id": 3})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing id or post_address in request body"}


class TestMaintenanceOperations:
    async def test_cleanup(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "CLEANUP", "days_old": 14})
        assert response.status_code == 200
        assert response.json() == {"message": "Cleaned up queue items older than 14 days", "deleted": 0}

    async def test_cleanup_default_days(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "CLEANUP"})
        assert response.status_code == 200
        assert "30 days" in response.json()["message"]

    async def test_reset_stale(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "RESET_STALE"})
        assert response.status_code == 200
        assert response.json()["reset"] == 0

    async def test_delete_is_acknowledged(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "DELETE", "id": 12})
        assert response.status_code == 200
        assert response.json() == {"message": "Delete operation acknowledged", "id": 12}


class TestErrors:
    """Tests for the error paths."""

    async def test_malformed_json(self, client: AsyncClient) -> None:
        response = await client.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be valid JSON"}

    async def test_non_object_body(self, client: AsyncClient) -> None:
        response = await client.post(URL, json=[1, 2, 3])
        assert response.status_code == 400

    async def test_unknown_operation(self, client: AsyncClient) -> None:
        response = await client.post(URL, json={"operation": "EXPLODE"})
        assert response.status_code == 400
        assert "error" in response.json()

    async def test_storage_failure_is_500(self, client: AsyncClient, scheduler: GeocodeScheduler) -> None:
        with patch.object(scheduler, "get_stats", new=AsyncMock(side_effect=QueueStorageError("store down"))):
            response = await client.post(URL, json={"operation": "STATS"})
        assert response.status_code == 500
        assert response.json() == {"error": "store down"}

    async def test_unexpected_failure_is_500(self, client: AsyncClient, scheduler: GeocodeScheduler) -> None:
        with patch.object(scheduler, "run_batch", new=AsyncMock(side_effect=RuntimeError("kaboom"))):
            response = await client.post(URL, json={"operation": "BATCH_UPDATE"})
        assert response.status_code == 500
        assert response.json() == {"error": "kaboom"}


class TestServiceToken:
    """Tests for the optional bearer service token."""

    @pytest.fixture
    async def secured_client(self, settings: Settings, scheduler: GeocodeScheduler) -> AsyncGenerator[AsyncClient]:
        secured = settings.model_copy(update={"service_token": "s3cret"})
        app = _build_app(secured, scheduler)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            yield c

    async def test_missing_token(self, secured_client: AsyncClient) -> None:
        response = await secured_client.post(URL, json={"operation": "STATS"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or missing service token"}

    async def test_wrong_token(self, secured_client: AsyncClient) -> None:
        response = await secured_client.post(
            URL, json={"operation": "STATS"}, headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    async def test_valid_token(self, secured_client: AsyncClient) -> None:
        response = await secured_client.post(
            URL, json={"operation": "STATS"}, headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200
