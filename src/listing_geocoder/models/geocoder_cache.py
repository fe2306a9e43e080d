"""GeocoderCache model: caches successful geocoding responses per provider and normalized address."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Double, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from listing_geocoder.models.base import Base, BigIntPK, utcnow


class GeocoderCache(Base):
    """Cached geocoding result keyed by provider and normalized address."""

    __tablename__ = "geocoder_cache"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    normalized_address: Mapped[str] = mapped_column(Text, nullable=False)
    latitude: Mapped[float] = mapped_column(Double, nullable=False)
    longitude: Mapped[float] = mapped_column(Double, nullable=False)
    matched_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_response: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (UniqueConstraint("provider", "normalized_address", name="uq_geocoder_cache_provider_address"),)
