"""FastAPI dependency injection for sessions, the scheduler, and service-token checks."""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from listing_geocoder.core.config import Settings, get_settings
from listing_geocoder.core.database import get_session_factory
from listing_geocoder.services.scheduler_service import GeocodeScheduler

bearer_scheme = HTTPBearer(auto_error=False)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_scheduler(request: Request) -> GeocodeScheduler:
    """Return the scheduler created during application startup.

    Raises:
        RuntimeError: If the application lifespan has not created one.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        msg = "Geocoding scheduler not initialized"
        raise RuntimeError(msg)
    return scheduler


async def require_service_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Reject requests without the configured bearer service token.

    No check is made when ``service_token`` is unset.

    Raises:
        HTTPException: 401 if the token is missing or wrong.
    """
    expected = settings.service_token
    if not expected:
        return
    supplied = credentials.credentials if credentials is not None else ""
    if not secrets.compare_digest(supplied, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing service token",
            headers={"WWW-Authenticate": "Bearer"},
        )
