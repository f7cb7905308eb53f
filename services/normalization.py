"""
Facility Data Normalizer
Turns raw OpenStreetMap elements into NormalizedFacility records

OSM tagging is inconsistent: the same clinic may be tagged amenity=clinic,
healthcare=clinic, or only carry an operator. Type, specialties and the
specialty fallback are each derived from an ordered rule table; the first
matching rule wins, so the tables read top to bottom in priority order.

What it guarantees:
- facility_type is always set (generic "Healthcare Facility" at worst)
- specialties is never empty (category default at worst)
- payment fields are only Yes/No when the tag says so; absence is Unknown

Elements without a resolvable coordinate are skipped, not errors.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from data_sources.models import Coordinate, NormalizedFacility, PaymentInfo, TriState
from data_sources.error_handling import ValidationError
from data_sources.utils import haversine_distance
from logging_config import get_logger

logger = get_logger(__name__)

Tags = Dict[str, str]
Rule = Tuple[Callable[[Tags], bool], Callable[[Tags], str]]

SPECIALITY_PREFIX = "healthcare:speciality:"
PAYMENT_PREFIX = "payment:"
NOT_AVAILABLE = "Not available"
NO_ADDRESS = "Address not available"
GENERIC_FACILITY_TYPE = "Healthcare Facility"


def _tag_is(key: str, value: str) -> Callable[[Tags], bool]:
    return lambda tags: tags.get(key) == value


def _const(value: str) -> Callable[[Tags], str]:
    return lambda tags: value


FACILITY_TYPE_RULES: List[Rule] = [
    (_tag_is("amenity", "hospital"), _const("Hospital")),
    (_tag_is("amenity", "clinic"), _const("Clinic")),
    (_tag_is("amenity", "doctors"), _const("Doctor's Office")),
    (_tag_is("healthcare", "centre"), _const("Health Center")),
    (_tag_is("healthcare", "clinic"), _const("Clinic")),
    (lambda tags: bool(tags.get("healthcare")), lambda tags: f"Healthcare ({tags['healthcare']})"),
    (_tag_is("social_facility", "healthcare"), _const("Community Health Center")),
]

# healthcare=<value> -> specialty added on top of explicit speciality tags
HEALTHCARE_SPECIALTIES: Dict[str, str] = {
    "dentist": "Dentistry",
    "pharmacy": "Pharmacy",
    "optometrist": "Optometry",
    "rehabilitation": "Rehabilitation",
    "alternative": "Alternative Medicine",
    "laboratory": "Medical Laboratory",
    "psychology": "Psychology",
}

SPECIALTY_FALLBACK_RULES: List[Rule] = [
    (_tag_is("amenity", "hospital"), _const("General Hospital Services")),
    (_tag_is("amenity", "clinic"), _const("General Clinic Services")),
    (lambda tags: bool(tags.get("healthcare")),
     lambda tags: f"{tags['healthcare'][:1].upper()}{tags['healthcare'][1:]} Services"),
]


def _first_match(rules: List[Rule], tags: Tags, default: str) -> str:
    for predicate, result in rules:
        if predicate(tags):
            return result(tags)
    return default


def facility_type(tags: Tags) -> str:
    """User-facing facility category, never empty."""
    return _first_match(FACILITY_TYPE_RULES, tags, GENERIC_FACILITY_TYPE)


def facility_name(tags: Tags, category: Optional[str] = None) -> str:
    """Explicit name, else '<operator> <type>', else 'Unnamed <type>'."""
    if tags.get("name"):
        return tags["name"]
    category = category or facility_type(tags)
    if tags.get("operator"):
        return f"{tags['operator']} {category}"
    return f"Unnamed {category}"


def extract_specialties(tags: Tags) -> List[str]:
    specialties = [
        key[len(SPECIALITY_PREFIX):]
        for key, value in tags.items()
        if key.startswith(SPECIALITY_PREFIX) and value == "yes"
    ]
    extra = HEALTHCARE_SPECIALTIES.get(tags.get("healthcare", ""))
    if extra:
        specialties.append(extra)
    if not specialties:
        specialties = [_first_match(SPECIALTY_FALLBACK_RULES, tags, "General Healthcare")]
    return specialties


def _yes_no(value: Optional[str]) -> TriState:
    if value == "yes":
        return TriState.YES
    if value == "no":
        return TriState.NO
    return TriState.UNKNOWN


def _free_care(fee: Optional[str]) -> TriState:
    # fee=no means the care itself is free
    if fee in ("no", "none"):
        return TriState.YES
    if fee == "yes":
        return TriState.NO
    return TriState.UNKNOWN


def extract_payment_info(tags: Tags) -> PaymentInfo:
    excluded = {"payment:sliding_scale", "payment:insurance"}
    methods = [
        key[len(PAYMENT_PREFIX):]
        for key, value in tags.items()
        if key.startswith(PAYMENT_PREFIX) and value == "yes" and key not in excluded
    ]
    return PaymentInfo(
        accepts_insurance=_yes_no(tags.get("payment:insurance")),
        sliding_scale=_yes_no(tags.get("payment:sliding_scale")),
        free_care=_free_care(tags.get("fee")),
        payment_methods=methods,
    )


def format_address(tags: Tags) -> str:
    parts = []

    housenumber = tags.get("addr:housenumber")
    street = tags.get("addr:street")
    if housenumber and street:
        parts.append(f"{housenumber} {street}")
    elif street:
        parts.append(street)

    city = tags.get("addr:city")
    if city:
        city_part = city
        if tags.get("addr:postcode"):
            city_part += f", {tags['addr:postcode']}"
        if tags.get("addr:state"):
            city_part += f", {tags['addr:state']}"
        parts.append(city_part)

    return ", ".join(parts) if parts else NO_ADDRESS


def index_nodes(elements: Iterable[Dict[str, Any]]) -> Dict[int, Dict[str, Any]]:
    """Nodes of one Overpass result batch, by id."""
    return {e["id"]: e for e in elements if e.get("type") == "node" and "id" in e}


def resolve_coordinate(element: Dict[str, Any], nodes: Dict[int, Dict[str, Any]]) -> Optional[Coordinate]:
    """
    Nodes carry lat/lon; ways take their first member node from the same batch.

    Returns None when nothing resolves (missing node, relation, bad values).
    """
    elem_type = element.get("type")
    source: Optional[Dict[str, Any]] = None
    if elem_type == "node":
        source = element
    elif elem_type == "way":
        node_ids = element.get("nodes") or []
        if node_ids:
            source = nodes.get(node_ids[0])

    if not source or source.get("lat") is None or source.get("lon") is None:
        return None
    try:
        return Coordinate(float(source["lat"]), float(source["lon"]))
    except (TypeError, ValueError, ValidationError):
        return None


def normalize(element: Dict[str, Any], nodes: Dict[int, Dict[str, Any]],
              origin: Optional[Coordinate] = None) -> Optional[NormalizedFacility]:
    """
    Normalize one Overpass element.

    Args:
        element: Raw element (type, id, tags, lat/lon or nodes)
        nodes: Nodes of the same result batch (see index_nodes)
        origin: Search origin; when given, distance_km is filled in

    Returns:
        NormalizedFacility, or None when the element is not a facility or has
        no resolvable coordinate
    """
    tags = element.get("tags")
    if not tags or element.get("type") not in ("node", "way"):
        return None

    coordinate = resolve_coordinate(element, nodes)
    if coordinate is None:
        logger.debug(
            "Skipping facility without resolvable coordinates",
            extra={"osm_id": element.get("id"), "elem_type": element.get("type")},
        )
        return None

    category = facility_type(tags)
    distance_km = None
    if origin is not None:
        distance_km = haversine_distance(origin.latitude, origin.longitude,
                                         coordinate.latitude, coordinate.longitude)

    return NormalizedFacility(
        osm_id=element.get("id"),
        element_type=element["type"],
        name=facility_name(tags, category),
        coordinate=coordinate,
        facility_type=category,
        address=format_address(tags),
        phone=tags.get("phone") or tags.get("contact:phone") or NOT_AVAILABLE,
        website=tags.get("website") or tags.get("contact:website") or NOT_AVAILABLE,
        opening_hours=tags.get("opening_hours") or "Not specified",
        wheelchair=tags.get("wheelchair") or "Unknown",
        emergency=tags.get("emergency") or "Unknown",
        specialties=extract_specialties(tags),
        payment_info=extract_payment_info(tags),
        tags=dict(tags),
        distance_km=distance_km,
    )


def normalize_elements(elements: List[Dict[str, Any]],
                       origin: Optional[Coordinate] = None) -> List[NormalizedFacility]:
    """Normalize a whole Overpass batch, dropping skipped elements."""
    nodes = index_nodes(elements)
    facilities = []
    skipped = 0
    for element in elements:
        facility = normalize(element, nodes, origin)
        if facility is None:
            # Untagged member nodes are expected; only count tagged skips
            if element.get("tags"):
                skipped += 1
            continue
        facilities.append(facility)
    if skipped:
        logger.info(f"Skipped {skipped} tagged elements without usable coordinates")
    return facilities
