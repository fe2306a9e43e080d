"""Unit tests for geocoding operation dispatch guards."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from listing_geocoder.api.v1.geocoding import _dispatch
from listing_geocoder.schemas.geocoding import GeocodeOperation, GeocodeOperationRequest


def _scheduler() -> MagicMock:
    scheduler = MagicMock()
    scheduler.process_one = AsyncMock()
    return scheduler


class TestDispatchGuards:
    """Requests that skipped model validation are still rejected."""

    async def test_delete_without_id(self) -> None:
        request_body = GeocodeOperationRequest.model_construct(operation=GeocodeOperation.DELETE, id=None)
        with pytest.raises(ValueError, match="Missing id"):
            await _dispatch(request_body, _scheduler())

    async def test_single_without_address(self) -> None:
        scheduler = _scheduler()
        request_body = GeocodeOperationRequest.model_construct(
            operation=GeocodeOperation.SINGLE, id=5, post_address=None
        )
        with pytest.raises(ValueError, match="Missing id or post_address"):
            await _dispatch(request_body, scheduler)
        scheduler.process_one.assert_not_called()
