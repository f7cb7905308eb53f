"""
Facility Search
Geocode a location, fetch nearby facilities, annotate distance, filter, rank.

Two sources:
- live map search: OpenStreetMap via Overpass, normalized per request
- directory search: curated facilities from the FacilityStore (with cost data)

Both calls are sequential (the facility query needs the geocoded origin) and
all-or-nothing: any upstream failure aborts the search and is re-raised as is.
"""

import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from config import Settings, get_settings
from data_sources.error_handling import NotFoundError, ValidationError
from data_sources.facility_store import DEFAULT_NEAR_LIMIT, FacilityStore
from data_sources.geocoding import NominatimGeocoder
from data_sources.models import (
    Coordinate,
    FacilityType,
    NormalizedFacility,
    PaymentOptions,
    PersistedFacility,
    TriState,
)
from data_sources.osm_api import OverpassClient
from logging_config import get_logger, log_performance
from .normalization import index_nodes, normalize, normalize_elements

logger = get_logger(__name__)

# Live-search payment option -> PaymentInfo attribute that must be Yes
MAP_PAYMENT_FILTERS = {
    "slidingScale": "sliding_scale",
    "freeCare": "free_care",
    "insurance": "accepts_insurance",
}


@dataclass
class SearchResult:
    origin_display_name: str
    origin: Coordinate
    radius_km: float
    providers: List[NormalizedFacility]

    @property
    def count(self) -> int:
        return len(self.providers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.origin_display_name,
            "searchCoordinates": self.origin.to_dict(),
            "radius": self.radius_km,
            "totalProviders": self.count,
            "providers": [p.to_dict() for p in self.providers],
        }


@dataclass
class DirectorySearchResult:
    origin_display_name: str
    origin: Coordinate
    radius_km: float
    matches: List[Tuple[PersistedFacility, float]]  # (facility, distance_km)

    @property
    def count(self) -> int:
        return len(self.matches)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.origin_display_name,
            "searchCoordinates": self.origin.to_dict(),
            "radius": self.radius_km,
            "totalProviders": self.count,
            "providers": [f.to_public_dict(distance_km=d) for f, d in self.matches],
        }


def filter_by_facility_type(facilities: Iterable[NormalizedFacility],
                            care_type: Optional[str]) -> List[NormalizedFacility]:
    """Case-insensitive substring match on facility_type; no filter when blank."""
    facilities = list(facilities)
    if not care_type or not care_type.strip():
        return facilities
    needle = care_type.strip().lower()
    return [f for f in facilities if needle in f.facility_type.lower()]


def filter_by_payment(facilities: Iterable[NormalizedFacility],
                      options: Optional[Sequence[str]]) -> List[NormalizedFacility]:
    """Keep facilities with an explicit Yes for at least one requested option."""
    facilities = list(facilities)
    if not options:
        return facilities
    attrs = [MAP_PAYMENT_FILTERS[o] for o in options]
    return [
        f for f in facilities
        if any(getattr(f.payment_info, attr) == TriState.YES for attr in attrs)
    ]


def sort_by_distance(facilities: Iterable[NormalizedFacility]) -> List[NormalizedFacility]:
    return sorted(facilities, key=lambda f: f.distance_km if f.distance_km is not None else float("inf"))


class FacilitySearch:
    """Orchestrates geocoding and facility queries for both search modes."""

    def __init__(self, geocoder: NominatimGeocoder, overpass: OverpassClient,
                 store: Optional[FacilityStore] = None,
                 settings: Optional[Settings] = None):
        self.geocoder = geocoder
        self.overpass = overpass
        self.store = store
        self.settings = settings or get_settings()

    def _validate_radius(self, radius_km: Any) -> float:
        try:
            radius_km = float(radius_km)
        except (TypeError, ValueError):
            raise ValidationError("Radius must be a number of kilometers")
        if not math.isfinite(radius_km):
            raise ValidationError("Radius must be a finite number of kilometers")
        if radius_km <= 0:
            raise ValidationError("Radius must be greater than zero")
        if radius_km > self.settings.max_search_radius_km:
            raise ValidationError(
                f"Radius must not exceed {self.settings.max_search_radius_km:g} km"
            )
        return radius_km

    @staticmethod
    def _validate_options(options: Optional[Sequence[str]], allowed: Iterable[str]) -> List[str]:
        options = list(options or [])
        allowed = set(allowed)
        unknown = [o for o in options if o not in allowed]
        if unknown:
            raise ValidationError(
                f"Unknown payment option(s): {', '.join(unknown)}. Expected: {', '.join(sorted(allowed))}"
            )
        return options

    def search(self, location: str, radius_km: float = 10.0,
               care_type: Optional[str] = None,
               payment_options: Optional[Sequence[str]] = None) -> SearchResult:
        """
        Live map search.

        Args:
            location: Free-text location
            radius_km: Search radius in kilometers
            care_type: Optional substring of the facility type ("clinic", "hospital")
            payment_options: Optional subset of slidingScale, freeCare, insurance (OR)

        Returns:
            SearchResult with providers sorted nearest first
        """
        if not location or not str(location).strip():
            raise ValidationError("Location is required")
        radius_km = self._validate_radius(radius_km)
        options = self._validate_options(payment_options, MAP_PAYMENT_FILTERS)

        start = time.time()
        origin = self.geocoder.geocode(location)
        elements = self.overpass.query_healthcare_facilities(
            origin.latitude, origin.longitude, int(round(radius_km * 1000))
        )

        providers = normalize_elements(elements, origin.coordinate)
        providers = filter_by_facility_type(providers, care_type)
        providers = filter_by_payment(providers, options)
        providers = sort_by_distance(providers)

        log_performance(logger, "map_search", time.time() - start,
                        location=location, lat=origin.latitude, lon=origin.longitude,
                        radius_km=radius_km, provider_count=len(providers))
        return SearchResult(origin.display_name, origin.coordinate, radius_km, providers)

    def search_directory(self, location: str, radius_km: float = 10.0,
                         facility_type: Optional[str] = None,
                         payment_options: Optional[Sequence[str]] = None,
                         limit: Optional[int] = DEFAULT_NEAR_LIMIT) -> DirectorySearchResult:
        """
        Curated directory search.

        facility_type is an exact FacilityType match; payment_options are OR'ed
        over the fixed PaymentOptions flag list.
        """
        if self.store is None:
            raise RuntimeError("Directory search needs a FacilityStore")
        if not location or not str(location).strip():
            raise ValidationError("Location is required")
        radius_km = self._validate_radius(radius_km)
        options = self._validate_options(payment_options, PaymentOptions.OPTION_FLAGS)
        parsed_type = FacilityType.parse(facility_type) if facility_type else None

        start = time.time()
        origin = self.geocoder.geocode(location)
        matches = self.store.find_near(origin.coordinate, radius_km,
                                       facility_type=parsed_type,
                                       payment_options=options,
                                       limit=limit)

        log_performance(logger, "directory_search", time.time() - start,
                        location=location, lat=origin.latitude, lon=origin.longitude,
                        radius_km=radius_km, provider_count=len(matches))
        return DirectorySearchResult(origin.display_name, origin.coordinate, radius_km, matches)

    def get_facility_details(self, element_type: str, osm_id: int) -> NormalizedFacility:
        """
        Normalized detail for one map element (no origin, so no distance).

        Raises:
            ValidationError: unknown element type
            NotFoundError: element missing or without usable tags/coordinates
        """
        elements = self.overpass.get_element(element_type, osm_id)
        target = next(
            (e for e in elements if e.get("type") == element_type and e.get("id") == osm_id),
            None,
        )
        if target is None:
            raise NotFoundError(f"Facility {element_type}/{osm_id} not found")

        facility = normalize(target, index_nodes(elements))
        if facility is None:
            raise NotFoundError(f"Facility {element_type}/{osm_id} has no usable location data")
        return facility
