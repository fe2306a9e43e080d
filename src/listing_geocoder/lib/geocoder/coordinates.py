"""Coordinate value type and validation rules."""

import math
from dataclasses import dataclass

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """Check that a latitude/longitude pair is usable as a geocoding result.

    Both values must be finite and in range.  The pair ``(0, 0)`` is treated
    as a "no location" sentinel and rejected, even though it is a real point
    in the Gulf of Guinea.

    Args:
        latitude: WGS84 latitude.
        longitude: WGS84 longitude.

    Returns:
        True if the pair is acceptable.
    """
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    if not (MIN_LATITUDE <= lat <= MAX_LATITUDE and MIN_LONGITUDE <= lon <= MAX_LONGITUDE):
        return False
    return not (lat == 0 and lon == 0)


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair."""

    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        return is_valid_coordinates(self.latitude, self.longitude)

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}
