"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from listing_geocoder.models.base import Base
from listing_geocoder.models.geocoder_cache import GeocoderCache
from listing_geocoder.models.listing import Listing
from listing_geocoder.models.queue_item import QueueItem, QueueStatus

__all__ = [
    "Base",
    "GeocoderCache",
    "Listing",
    "QueueItem",
    "QueueStatus",
]
