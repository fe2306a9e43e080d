"""Pydantic v2 schemas for the geocoding invocation surface."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class GeocodeOperation(StrEnum):
    """Operations accepted by the geocoding endpoint."""

    BATCH_UPDATE = "BATCH_UPDATE"
    STATS = "STATS"
    SINGLE = "SINGLE"
    CLEANUP = "CLEANUP"
    RESET_STALE = "RESET_STALE"
    DELETE = "DELETE"


class GeocodeOperationRequest(BaseModel):
    """JSON body of ``POST /geocoding/update-post-coordinates``.

    A body without ``operation`` but with ``id`` and ``post_address`` is a
    single-listing geocode.
    """

    model_config = {"extra": "ignore"}

    operation: GeocodeOperation | None = None
    batch_size: int | None = Field(default=None, gt=0, le=1000)
    days_old: int | None = Field(default=None, ge=0)
    id: int | None = None
    post_address: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _resolve_operation(self) -> "GeocodeOperationRequest":
        if self.operation is None:
            self.operation = GeocodeOperation.SINGLE
        if self.operation == GeocodeOperation.SINGLE:
            if self.id is None or not (self.post_address or "").strip():
                msg = "Missing id or post_address in request body"
                raise ValueError(msg)
        if self.operation == GeocodeOperation.DELETE and self.id is None:
            msg = "Missing id in request body"
            raise ValueError(msg)
        return self


class CoordinatesResponse(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ItemResultResponse(BaseModel):
    """Per-item outcome of a geocode attempt."""

    id: int
    success: bool
    queue_id: int | None = None
    address: str | None = None
    coordinates: CoordinatesResponse | None = None
    reason: str | None = None
    failure_kind: str | None = None
    status: str | None = None


class BatchUpdateResponse(BaseModel):
    message: str
    processed: int
    successful: int
    failed: int
    results: list[ItemResultResponse] = Field(default_factory=list)


class QueueStatsResponse(BaseModel):
    pending: int
    processing: int
    failed_retryable: int
    failed_permanent: int
    completed_today: int


class StatsResponse(BaseModel):
    message: str
    stats: QueueStatsResponse


class CleanupResponse(BaseModel):
    message: str
    deleted: int


class ResetStaleResponse(BaseModel):
    message: str
    reset: int


class DeleteAckResponse(BaseModel):
    message: str
    id: int


class ErrorResponse(BaseModel):
    error: str
    details: Any | None = None
