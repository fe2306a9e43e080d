"""Tests for the FastAPI application factory module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from listing_geocoder.core.config import Settings
from listing_geocoder.main import create_app, lifespan


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self, settings: Settings) -> FastAPI:
        with patch("listing_geocoder.main.get_settings", return_value=settings):
            return create_app()

    def test_app_is_created(self, app: FastAPI) -> None:
        assert app.title == "Listing Geocoder"

    def test_route_registered(self, app: FastAPI) -> None:
        paths = {getattr(route, "path", None) for route in app.routes}
        assert "/api/v1/geocoding/update-post-coordinates" in paths
        assert "/health" in paths

    def test_not_found_uses_error_shape(self, app: FastAPI) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/nope")
        assert response.status_code == 404
        assert "error" in response.json()


class TestAppLifespan:
    """Tests for lifespan management."""

    async def test_lifespan_starts_and_stops_scheduler(self, settings: Settings) -> None:
        settings = settings.model_copy(update={"geocode_scheduler_enabled": True})
        mock_app = MagicMock()
        scheduler = MagicMock()
        scheduler.stop = AsyncMock()

        with (
            patch("listing_geocoder.main.get_settings", return_value=settings),
            patch("listing_geocoder.main.setup_logging") as mock_setup_logging,
            patch("listing_geocoder.main.init_engine") as mock_init_engine,
            patch("listing_geocoder.main.get_session_factory"),
            patch("listing_geocoder.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
            patch("listing_geocoder.services.scheduler_service.build_scheduler", return_value=scheduler),
        ):
            async with lifespan(mock_app):
                mock_setup_logging.assert_called_once()
                mock_init_engine.assert_called_once()
                scheduler.start.assert_called_once()
                assert mock_app.state.scheduler is scheduler

            scheduler.stop.assert_awaited_once()
            mock_dispose.assert_awaited_once()

    async def test_lifespan_scheduler_disabled(self, settings: Settings) -> None:
        scheduler = MagicMock()
        scheduler.stop = AsyncMock()

        with (
            patch("listing_geocoder.main.get_settings", return_value=settings),
            patch("listing_geocoder.main.setup_logging"),
            patch("listing_geocoder.main.init_engine"),
            patch("listing_geocoder.main.get_session_factory"),
            patch("listing_geocoder.main.dispose_engine", new_callable=AsyncMock),
            patch("listing_geocoder.services.scheduler_service.build_scheduler", return_value=scheduler),
        ):
            async with lifespan(MagicMock()):
                scheduler.start.assert_not_called()
