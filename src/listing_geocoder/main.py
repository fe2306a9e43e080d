"""FastAPI application factory.

Creates the FastAPI app with lifespan management (database engine and the
periodic geocoding scheduler), exception handlers, and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from listing_geocoder import __version__
from listing_geocoder.core.config import get_settings
from listing_geocoder.core.database import dispose_engine, get_session_factory, init_engine
from listing_geocoder.core.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Init engine and scheduler on startup; stop and dispose on shutdown."""
    from listing_geocoder.services.scheduler_service import build_scheduler

    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir, json_logs=settings.log_json)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    scheduler = build_scheduler(settings, get_session_factory())
    app.state.scheduler = scheduler
    if settings.geocode_scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Geocoding scheduler disabled; batches run only on demand")

    yield

    await scheduler.stop()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Listing Geocoder",
        description="Queue-based address-to-coordinate geocoding for marketplace listings",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    from listing_geocoder.api.router import create_router

    app.include_router(create_router(settings))

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
