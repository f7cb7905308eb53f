"""
Geocoding API Client
Resolves free-text locations with Nominatim (OpenStreetMap)
"""

import time
from typing import Optional

import requests

from config import Settings, get_settings
from logging_config import get_logger, log_api_call, log_performance
from .error_handling import LocationNotFound, UpstreamUnavailable, ValidationError, request_with_retry
from .models import GeocodeResult
from .retry_config import RetryConfig, get_retry_config

logger = get_logger(__name__)


class NominatimGeocoder:
    """
    Geocoder backed by the Nominatim search endpoint.

    Every call goes to the network unless a cache (TTLCache/RedisCache) is
    injected. Only the first match is used.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None,
                 cache=None,
                 retry_config: Optional[RetryConfig] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.cache = cache
        self.retry_config = retry_config or get_retry_config("geocoding")

    def _cache_key(self, address: str) -> str:
        return "geocode:" + " ".join(address.lower().split())

    def geocode(self, address: str) -> GeocodeResult:
        """
        Geocode an address to coordinates.

        Args:
            address: Address string, city or ZIP code

        Returns:
            GeocodeResult(latitude, longitude, display_name)

        Raises:
            ValidationError: blank address
            LocationNotFound: Nominatim returned no match
            UpstreamUnavailable: network, timeout, HTTP or parse failure
        """
        if not isinstance(address, str) or not address.strip():
            raise ValidationError("Location is required")
        address = address.strip()

        if self.cache is not None:
            cached = self.cache.get(self._cache_key(address))
            if cached is not None:
                logger.debug(f"Geocode cache hit for '{address}'")
                return GeocodeResult.from_dict(cached)

        params = {
            "q": address,
            "format": "json",
            "limit": 1,
        }
        headers = {
            "Accept": "application/json",
            "User-Agent": self.settings.user_agent,
        }

        def _do_request(attempt: int) -> requests.Response:
            return self.session.get(self.settings.nominatim_url, params=params,
                                    headers=headers, timeout=self.settings.geocoder_timeout)

        log_api_call(logger, "nominatim", self.settings.nominatim_url, location=address)
        start = time.time()
        resp = request_with_retry(_do_request, self.retry_config, "nominatim")

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Nominatim returned invalid JSON: {e}", "nominatim", resp.status_code)

        if not isinstance(data, list):
            raise UpstreamUnavailable("Nominatim returned an unexpected payload", "nominatim", resp.status_code)
        if not data:
            logger.info(f"No geocoding match for '{address}'", extra={"location": address})
            raise LocationNotFound(f"Location not found: {address}")

        first = data[0]
        try:
            result = GeocodeResult(
                latitude=float(first["lat"]),
                longitude=float(first["lon"]),
                display_name=first.get("display_name") or address,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(f"Nominatim result missing coordinates: {e}", "nominatim", resp.status_code)

        log_performance(logger, "geocode", time.time() - start,
                        location=address, lat=result.latitude, lon=result.longitude)

        if self.cache is not None:
            self.cache.set(self._cache_key(address), result.to_dict())
        return result
