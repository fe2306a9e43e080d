"""Geocoder library: pluggable address geocoding with caching.

Public API:
    - BaseGeocoder: Abstract provider interface
    - GeocodingResult: Result dataclass
    - GeocodeFailureKind: Failure classification enum
    - GeocodingError / GeocodingProviderError / InvalidAddressError: Failure exceptions
    - Coordinates / is_valid_coordinates: Coordinate value type and validation
    - NominatimGeocoder: OpenStreetMap Nominatim provider
    - normalize_address / simplify_address: Address text helpers
    - MinIntervalLimiter: Spacing between sequential provider calls
    - cache_lookup / cache_store / cache_purge: Database caching functions
    - get_geocoder / get_configured_geocoder: Provider factory/registry
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from listing_geocoder.lib.geocoder.address import normalize_address, simplify_address
from listing_geocoder.lib.geocoder.base import (
    BaseGeocoder,
    GeocodeFailureKind,
    GeocodingError,
    GeocodingProviderError,
    GeocodingResult,
    InvalidAddressError,
)
from listing_geocoder.lib.geocoder.cache import cache_lookup, cache_purge, cache_store
from listing_geocoder.lib.geocoder.coordinates import Coordinates, is_valid_coordinates
from listing_geocoder.lib.geocoder.nominatim import NominatimGeocoder
from listing_geocoder.lib.geocoder.rate_limit import MinIntervalLimiter

if TYPE_CHECKING:
    from listing_geocoder.core.config import Settings

# Provider registry: all known providers
_PROVIDERS: dict[str, type[BaseGeocoder]] = {
    "nominatim": NominatimGeocoder,
}


def get_available_providers() -> list[str]:
    """Return the names of all registered geocoder providers."""
    return sorted(_PROVIDERS.keys())


def register_provider(name: str, cls: type[BaseGeocoder]) -> None:
    """Register an additional provider class under ``name``."""
    _PROVIDERS[name] = cls


def get_geocoder(provider: str = "nominatim", **kwargs: Any) -> BaseGeocoder:
    """Get a geocoder instance by provider name.

    Args:
        provider: Provider name (e.g., "nominatim").
        **kwargs: Additional arguments forwarded to the provider constructor.

    Returns:
        An instance of the requested geocoder provider.

    Raises:
        ValueError: If the provider is not registered.
    """
    cls = _PROVIDERS.get(provider)
    if cls is None:
        msg = f"Unknown geocoder provider: {provider!r}. Available: {list(_PROVIDERS.keys())}"
        raise ValueError(msg)
    return cls(**kwargs)


def get_configured_geocoder(settings: Settings) -> BaseGeocoder:
    """Build the provider named by ``settings.geocoder_provider`` with its settings."""
    provider_kwargs: dict[str, dict[str, Any]] = {
        "nominatim": {
            "timeout": settings.geocoder_timeout,
            "email": settings.geocoder_nominatim_email,
            "user_agent": settings.geocoder_nominatim_user_agent,
            "base_url": settings.geocoder_nominatim_base_url,
            "country_codes": settings.geocoder_country_code_list,
        },
    }
    name = settings.geocoder_provider.strip().lower()
    return get_geocoder(name, **provider_kwargs.get(name, {}))


__all__ = [
    "BaseGeocoder",
    "Coordinates",
    "GeocodeFailureKind",
    "GeocodingError",
    "GeocodingProviderError",
    "GeocodingResult",
    "InvalidAddressError",
    "MinIntervalLimiter",
    "NominatimGeocoder",
    "cache_lookup",
    "cache_purge",
    "cache_store",
    "get_available_providers",
    "get_configured_geocoder",
    "get_geocoder",
    "is_valid_coordinates",
    "normalize_address",
    "register_provider",
    "simplify_address",
]
