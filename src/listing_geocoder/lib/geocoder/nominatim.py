"""OpenStreetMap Nominatim geocoder provider.

One search request per call against the public (or a self-hosted) Nominatim
``/search`` endpoint.  The public service allows at most one request per
second per client; spacing is enforced by the caller's limiter.
"""

from typing import Any

import httpx
from loguru import logger

from listing_geocoder.lib.geocoder.base import (
    BaseGeocoder,
    GeocodeFailureKind,
    GeocodingProviderError,
    GeocodingResult,
    InvalidAddressError,
)

PROVIDER = "nominatim"
NOMINATIM_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "listing-geocoder/0.1"


def _transport_failure(exc: httpx.HTTPError) -> GeocodingProviderError:
    """Translate an httpx failure into a classified provider error."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        logger.warning(f"Nominatim answered HTTP {code}")
        return GeocodingProviderError(PROVIDER, f"Provider returned HTTP {code}", status_code=code)
    if isinstance(exc, httpx.TimeoutException):
        logger.warning("Nominatim request timed out")
        return GeocodingProviderError(PROVIDER, "Geocoding request timed out")
    logger.warning(f"Nominatim unreachable: {exc.__class__.__name__}")
    return GeocodingProviderError(PROVIDER, "Connection to geocoding provider failed")


class NominatimGeocoder(BaseGeocoder):
    """Nominatim search client.

    Args:
        timeout: Per-request timeout in seconds.
        email: Contact address sent with each request (usage policy).
        user_agent: Identifying User-Agent (required by the usage policy).
        base_url: Search endpoint; point at a self-hosted instance if needed.
        country_codes: ISO codes restricting matches, e.g. ``["gb", "ie"]``.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        base_url: str = NOMINATIM_API_URL,
        country_codes: list[str] | None = None,
    ) -> None:
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent
        self._base_url = base_url
        self._country_codes = country_codes or []

    @property
    def provider_name(self) -> str:
        return PROVIDER

    @property
    def rate_limit_delay(self) -> float:
        return 1.0

    def _search_params(self, query: str) -> dict[str, Any]:
        params: dict[str, Any] = {"q": query, "format": "json", "limit": 1, "addressdetails": 1}
        if self._country_codes:
            params["countrycodes"] = ",".join(self._country_codes)
        if self._email:
            params["email"] = self._email
        return params

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self._user_agent, "Accept": "application/json", "Accept-Language": "en"}

    async def geocode(self, address: str) -> GeocodingResult | None:
        """Resolve ``address`` with a single search request.

        Returns:
            The best match, or None when Nominatim has no match.

        Raises:
            InvalidAddressError: If the address is blank.
            GeocodingProviderError: On HTTP errors, timeouts, unreachable
                hosts, or an unreadable body.
        """
        query = (address or "").strip()
        if not query:
            raise InvalidAddressError("Address is empty")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._base_url, params=self._search_params(query), headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise _transport_failure(e) from e

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning("Nominatim returned a non-JSON response")
            raise GeocodingProviderError(PROVIDER, "Provider returned a non-JSON response") from e
        return self._parse_response(payload)

    def _parse_response(self, data: object) -> GeocodingResult | None:
        """Turn the search payload (a JSON list of places) into a result.

        Raises:
            GeocodingProviderError: If the first place lacks usable lat/lon.
        """
        if not isinstance(data, list) or not data:
            return None

        place = data[0]
        try:
            latitude, longitude = float(place["lat"]), float(place["lon"])
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Unreadable Nominatim place: {e}")
            raise GeocodingProviderError(
                PROVIDER, f"Failed to parse response: {e}", kind=GeocodeFailureKind.NO_RESULT
            ) from e

        return GeocodingResult(
            latitude=latitude,
            longitude=longitude,
            matched_address=place.get("display_name"),
            raw_response={"results": data},
        )
