"""
OpenStreetMap API Client
Queries Overpass API for healthcare points of interest
"""

import time
from typing import Any, Dict, List, Optional

import requests

from config import Settings, get_settings
from logging_config import get_logger, log_api_call, log_performance
from .error_handling import UpstreamUnavailable, ValidationError, request_with_retry
from .retry_config import RetryConfig, get_retry_config

logger = get_logger(__name__)

ELEMENT_TYPES = ("node", "way", "relation")

# (element types, tag filter) pairs unioned into one healthcare query
HEALTHCARE_SELECTORS = [
    (("node", "way", "relation"), '["amenity"="hospital"]'),
    (("node", "way", "relation"), '["amenity"="clinic"]'),
    (("node", "way"), '["amenity"="doctors"]'),
    (("node", "way"), '["healthcare"]'),
    (("node", "way"), '["social_facility"="healthcare"]'),
]


def build_healthcare_query(lat: float, lon: float, radius_m: int, timeout_s: int = 60) -> str:
    """
    Overpass QL for every healthcare-tagged element within `radius_m` of (lat, lon).

    `>` recurses down so ways come back together with their member nodes.
    """
    around = f"(around:{radius_m},{lat},{lon})"
    lines = [
        f"  {elem_type}{tag_filter}{around};"
        for elem_types, tag_filter in HEALTHCARE_SELECTORS
        for elem_type in elem_types
    ]
    body = "\n".join(lines)
    return f"""
    [out:json][timeout:{timeout_s}];
    (
{body}
    );
    out body;
    >;
    out skel qt;
    """


def build_element_query(element_type: str, osm_id: int, timeout_s: int = 25) -> str:
    """Overpass QL for a single element plus the nodes it references."""
    return f"""
    [out:json][timeout:{timeout_s}];
    {element_type}({osm_id});
    out body;
    >;
    out skel qt;
    """


class OverpassClient:
    """
    Thin client over the Overpass interpreter endpoint(s).

    Configured endpoints are tried in order; each retry moves to the next one.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None,
                 retry_configs: Optional[Dict[str, RetryConfig]] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.retry_configs = retry_configs or {}
        if not self.settings.overpass_urls:
            raise ValueError("At least one Overpass endpoint must be configured")

    def _endpoint(self, attempt: int) -> str:
        urls = self.settings.overpass_urls
        url = urls[attempt % len(urls)]
        if attempt:
            logger.warning(f"Switching Overpass endpoint to {url}")
        return url

    def _run(self, query: str, query_type: str) -> List[Dict[str, Any]]:
        config = self.retry_configs.get(query_type) or get_retry_config(query_type)

        def _do_request(attempt: int) -> requests.Response:
            return self.session.post(
                self._endpoint(attempt),
                data={"data": query},
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.overpass_timeout,
            )

        start = time.time()
        resp = request_with_retry(_do_request, config, "overpass")
        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Overpass returned invalid JSON: {e}", "overpass", resp.status_code)

        if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
            raise UpstreamUnavailable("Overpass response has no elements list", "overpass", resp.status_code)

        # Overpass reports server-side query timeouts in "remark" with a 200 status
        remark = data.get("remark") or ""
        if "runtime error" in remark.lower() or "timed out" in remark.lower():
            raise UpstreamUnavailable(f"Overpass query failed: {remark}", "overpass", resp.status_code)

        elements = data["elements"]
        log_performance(logger, f"overpass_{query_type}", time.time() - start)
        logger.debug(f"Overpass {query_type} query returned {len(elements)} elements")
        return elements

    def query_healthcare_facilities(self, lat: float, lon: float, radius_m: int) -> List[Dict[str, Any]]:
        """
        Query OSM for healthcare facilities around a point.

        Args:
            lat, lon: Search origin
            radius_m: Search radius in meters

        Returns:
            Raw Overpass elements (tagged facilities plus their way member nodes)

        Raises:
            UpstreamUnavailable: network, timeout, HTTP or parse failure
        """
        if radius_m <= 0:
            raise ValidationError("Search radius must be positive")
        query = build_healthcare_query(lat, lon, int(radius_m),
                                       timeout_s=int(self.settings.overpass_timeout))
        log_api_call(logger, "overpass", "healthcare", lat=lat, lon=lon, radius_km=radius_m / 1000.0)
        return self._run(query, "healthcare")

    def get_element(self, element_type: str, osm_id: int) -> List[Dict[str, Any]]:
        """
        Fetch one element by type and id, plus referenced nodes.

        Returns:
            Raw Overpass elements; the requested element first when it exists
        """
        if element_type not in ELEMENT_TYPES:
            raise ValidationError(f"Element type must be one of: {', '.join(ELEMENT_TYPES)}")
        query = build_element_query(element_type, int(osm_id))
        log_api_call(logger, "overpass", "details", osm_id=osm_id, elem_type=element_type)
        return self._run(query, "details")
