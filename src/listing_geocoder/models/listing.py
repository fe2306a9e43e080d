"""Listing model: the marketplace post whose coordinates this service maintains.

Only the columns the geocoding pipeline reads or writes are mapped here; the
rest of the ``posts`` table belongs to the marketplace application.
"""

from sqlalchemy import Double, Text
from sqlalchemy.orm import Mapped, mapped_column

from listing_geocoder.models.base import Base, BigIntPK, TimestampMixin


class Listing(Base, TimestampMixin):
    """A marketplace listing with a free-text address and optional coordinates."""

    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    post_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    # NULL until geocoded
    latitude: Mapped[float | None] = mapped_column(Double, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Double, nullable=True)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
