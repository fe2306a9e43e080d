"""Geocoding operations endpoint: batch runs, stats, single geocode, and maintenance.

Mirrors the operational surface of the scheduler.  Every response is JSON;
errors use the ``{"error": ...}`` shape with 400 for malformed requests and
500 for storage or unexpected failures.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from listing_geocoder.core.dependencies import get_scheduler, require_service_token
from listing_geocoder.core.logging import component_logger
from listing_geocoder.schemas.geocoding import (
    BatchUpdateResponse,
    CleanupResponse,
    DeleteAckResponse,
    GeocodeOperation,
    GeocodeOperationRequest,
    ItemResultResponse,
    QueueStatsResponse,
    ResetStaleResponse,
    StatsResponse,
)
from listing_geocoder.services.queue_service import QueueStorageError
from listing_geocoder.services.scheduler_service import GeocodeScheduler

logger = component_logger("api")

geocoding_router = APIRouter(prefix="/geocoding", tags=["geocoding"])


def _error(status_code: int, message: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    message = str(first.get("msg", "Invalid request body"))
    return message.removeprefix("Value error, ")


async def _dispatch(request_body: GeocodeOperationRequest, scheduler: GeocodeScheduler) -> dict[str, Any]:
    operation = request_body.operation

    if operation == GeocodeOperation.BATCH_UPDATE:
        summary = await scheduler.run_batch(request_body.batch_size)
        return BatchUpdateResponse(
            message=summary.message,
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
            results=[ItemResultResponse(**r.to_dict()) for r in summary.results],
        ).model_dump(exclude_none=True)

    if operation == GeocodeOperation.STATS:
        stats = await scheduler.get_stats()
        return StatsResponse(
            message="Queue statistics",
            stats=QueueStatsResponse(**stats.to_dict()),
        ).model_dump()

    if operation == GeocodeOperation.CLEANUP:
        days = request_body.days_old if request_body.days_old is not None else scheduler.cleanup_days
        deleted = await scheduler.cleanup(days)
        return CleanupResponse(message=f"Cleaned up queue items older than {days} days", deleted=deleted).model_dump()

    if operation == GeocodeOperation.RESET_STALE:
        reset = await scheduler.reset_stale()
        return ResetStaleResponse(message="Stale processing items reset", reset=reset).model_dump()

    if operation == GeocodeOperation.DELETE:
        if request_body.id is None:
            msg = "Missing id in request body"
            raise ValueError(msg)
        logger.info(f"Listing {request_body.id} deleted; acknowledged")
        return DeleteAckResponse(message="Delete operation acknowledged", id=request_body.id).model_dump()

    # SINGLE
    if request_body.id is None or request_body.post_address is None:
        msg = "Missing id or post_address in request body"
        raise ValueError(msg)
    result = await scheduler.process_one(request_body.id, request_body.post_address.strip())
    return ItemResultResponse(**result.to_dict()).model_dump(exclude_none=True)


@geocoding_router.post(
    "/update-post-coordinates",
    dependencies=[Depends(require_service_token)],
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Malformed request"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Storage or unexpected failure"},
    },
)
async def update_post_coordinates(
    request: Request,
    scheduler: Annotated[GeocodeScheduler, Depends(get_scheduler)],
) -> JSONResponse:
    """Run a geocoding operation selected by the ``operation`` field of the JSON body."""
    try:
        payload = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Request body must be valid JSON")
    if not isinstance(payload, dict):
        return _error(status.HTTP_400_BAD_REQUEST, "Request body must be a JSON object")

    try:
        request_body = GeocodeOperationRequest.model_validate(payload)
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(e))

    try:
        content = await _dispatch(request_body, scheduler)
    except ValueError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except QueueStorageError as e:
        logger.error(f"Geocoding operation {request_body.operation} failed: {e}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error during geocoding operation {request_body.operation}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or e.__class__.__name__)

    return JSONResponse(status_code=status.HTTP_200_OK, content=content)
