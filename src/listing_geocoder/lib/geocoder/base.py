"""Abstract base geocoder interface and the typed failure taxonomy."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from listing_geocoder.lib.geocoder.coordinates import Coordinates


class GeocodeFailureKind(StrEnum):
    """Why a geocoding attempt produced no usable coordinates."""

    NO_RESULT = "no_result"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_INPUT = "invalid_input"

    @property
    def is_retryable(self) -> bool:
        """Whether retrying the same address later can help."""
        return self is not GeocodeFailureKind.INVALID_INPUT


@dataclass
class GeocodingResult:
    """Result from a geocoding operation.

    Range checks are deliberately left to :class:`Coordinates`; a provider may
    hand back junk, and the worker decides what to do with it.
    """

    latitude: float
    longitude: float
    matched_address: str | None = None
    raw_response: dict | None = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)


class GeocodingError(Exception):
    """Base class for geocoding failures raised by a provider."""

    kind: GeocodeFailureKind = GeocodeFailureKind.SERVICE_UNAVAILABLE


class InvalidAddressError(GeocodingError):
    """Raised when the address is empty or unusable; retrying cannot help."""

    kind = GeocodeFailureKind.INVALID_INPUT


class GeocodingProviderError(GeocodingError):
    """Raised when a geocoding provider experiences a transport or service error.

    Distinguishes provider failures (timeout, HTTP error, connection error)
    from a successful response with no match (which returns None).

    Args:
        provider_name: Name of the failing provider.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider.
        kind: Failure classification; derived from ``status_code`` when omitted.
    """

    def __init__(
        self,
        provider_name: str,
        message: str,
        status_code: int | None = None,
        kind: GeocodeFailureKind | None = None,
    ) -> None:
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        if kind is None:
            kind = GeocodeFailureKind.RATE_LIMITED if status_code == 429 else GeocodeFailureKind.SERVICE_UNAVAILABLE
        self.kind = kind
        super().__init__(f"{provider_name}: {message}")


class BaseGeocoder(ABC):
    """Abstract geocoder interface. All providers must implement this.

    Implementations perform at most a bounded number of outbound calls per
    ``geocode`` and never retry on their own; retry policy belongs to the queue.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this geocoder provider."""

    @property
    def rate_limit_delay(self) -> float:
        """Minimum delay in seconds between requests (for rate-limited providers)."""
        return 0.0

    @abstractmethod
    async def geocode(self, address: str) -> GeocodingResult | None:
        """Geocode a single address.

        Args:
            address: Free-text address string.

        Returns:
            GeocodingResult or None if the address could not be resolved.

        Raises:
            InvalidAddressError: If the address is empty or unusable.
            GeocodingProviderError: On transport or service errors.
        """
