"""QueueItem model: one pending or historical geocoding request for a listing."""

import enum
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from listing_geocoder.models.base import Base, BigIntPK, TimestampMixin


class QueueStatus(enum.StrEnum):
    """Lifecycle status of a queue item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = (QueueStatus.PENDING, QueueStatus.PROCESSING)
TERMINAL_STATUSES = (QueueStatus.COMPLETED, QueueStatus.FAILED)

_ACTIVE_PREDICATE = text("status IN ('pending', 'processing')")


class QueueItem(Base, TimestampMixin):
    """Geocoding work item.

    Transitions: ``pending -> processing`` (claim), ``processing -> completed |
    pending | failed`` (worker). Only the cleanup sweep deletes rows.
    """

    __tablename__ = "location_update_queue"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    subject_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QueueStatus.PENDING, server_default=QueueStatus.PENDING.value, index=True
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3, server_default="3")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_location_queue_status",
        ),
        CheckConstraint("retry_count <= max_retries", name="ck_location_queue_retry_ceiling"),
        Index(
            "uq_location_queue_active_subject",
            "subject_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_location_queue_claim", "status", "created_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<QueueItem id={self.id} subject={self.subject_id} status={self.status} retries={self.retry_count}>"
