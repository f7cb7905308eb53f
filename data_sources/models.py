"""
Facility record types shared by the map client, the normalizer and the store.

Dataclasses use snake_case attributes; `to_dict()`/`from_dict()` speak the
camelCase shape the HTTP API and the SQLite JSON columns use.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .error_handling import ValidationError


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class TriState(str, Enum):
    """Explicit yes/no from a tag, or Unknown when the tag is absent."""
    YES = "Yes"
    NO = "No"
    UNKNOWN = "Unknown"


class FacilityType(str, Enum):
    """Closed set of facility types for curated directory records."""
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    DOCTORS = "doctors"
    DENTIST = "dentist"
    PHARMACY = "pharmacy"
    MENTAL = "mental"

    @classmethod
    def parse(cls, value: str) -> "FacilityType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(f"Invalid facilityType '{value}'. Expected one of: {allowed}")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def require_mapping(data: Any, field_name: str) -> Dict[str, Any]:
    """Nested JSON object, or {} when absent. Anything else is a ValidationError."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{field_name} must be an object")
    return data


def _require_list(data: Any, field_name: str) -> list:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValidationError(f"{field_name} must be a list")
    return data


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError(f"Latitude {self.latitude} outside [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError(f"Longitude {self.longitude} outside [-180, 180]")

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lon": self.longitude}


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.latitude, "lon": self.longitude, "displayName": self.display_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeocodeResult":
        return cls(float(data["lat"]), float(data["lon"]), data.get("displayName", ""))


# ---------------------------------------------------------------------------
# Map facilities (ephemeral, produced per search)
# ---------------------------------------------------------------------------

@dataclass
class PaymentInfo:
    accepts_insurance: TriState = TriState.UNKNOWN
    sliding_scale: TriState = TriState.UNKNOWN
    free_care: TriState = TriState.UNKNOWN
    payment_methods: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acceptsInsurance": self.accepts_insurance.value,
            "slidingScale": self.sliding_scale.value,
            "freeCare": self.free_care.value,
            "paymentMethods": list(self.payment_methods),
        }


@dataclass
class NormalizedFacility:
    osm_id: int
    element_type: str
    name: str
    coordinate: Coordinate
    facility_type: str
    address: str
    phone: str
    website: str
    opening_hours: str
    wheelchair: str
    emergency: str
    specialties: List[str]
    payment_info: PaymentInfo
    tags: Dict[str, str] = field(default_factory=dict)
    distance_km: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.osm_id,
            "type": self.element_type,
            "name": self.name,
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "facilityType": self.facility_type,
            "address": self.address,
            "phone": self.phone,
            "website": self.website,
            "openingHours": self.opening_hours,
            "wheelchair": self.wheelchair,
            "emergency": self.emergency,
            "distanceKm": round(self.distance_km, 3) if self.distance_km is not None else None,
            "specialties": list(self.specialties),
            "paymentInfo": self.payment_info.to_dict(),
            "tags": dict(self.tags),
        }


# ---------------------------------------------------------------------------
# Curated directory facilities (persisted)
# ---------------------------------------------------------------------------

@dataclass
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    formatted: str = ""

    def geocoding_query(self) -> str:
        """The text sent to the geocoder: 'street, city, state zip'."""
        state_zip = " ".join(p for p in (self.state, self.zip_code) if p)
        return ", ".join(p for p in (self.street, self.city, state_zip) if p)

    def full_address(self) -> str:
        if self.formatted:
            return self.formatted
        parts = [p for p in (self.street, self.city) if p]
        if self.state:
            parts.append(f"{self.state} {self.zip_code}" if self.zip_code else self.state)
        return ", ".join(parts)

    def location_fields(self) -> tuple:
        return (self.street, self.city, self.state, self.zip_code)

    def to_dict(self) -> Dict[str, str]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "formatted": self.formatted,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Address":
        data = require_mapping(data, "address")
        return cls(
            street=data.get("street") or "",
            city=data.get("city") or "",
            state=data.get("state") or "",
            zip_code=data.get("zipCode") or "",
            formatted=data.get("formatted") or "",
        )


@dataclass
class Contact:
    phone: str = ""
    email: str = ""
    website: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"phone": self.phone, "email": self.email, "website": self.website}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Contact":
        data = require_mapping(data, "contact")
        return cls(data.get("phone") or "", data.get("email") or "", data.get("website") or "")


@dataclass
class PaymentOptions:
    sliding_scale: bool = False
    free_care: bool = False
    accepts_insurance: bool = True
    accepts_medicaid: bool = False
    accepts_medicare: bool = False
    financial_assistance: bool = False
    charity_care: bool = False

    # Request option name -> attribute, the fixed checkbox list of the directory search
    OPTION_FLAGS = {
        "slidingScale": "sliding_scale",
        "freeCare": "free_care",
        "insurance": "accepts_insurance",
        "medicaid": "accepts_medicaid",
        "medicare": "accepts_medicare",
        "financialAssistance": "financial_assistance",
        "charityCare": "charity_care",
    }

    def satisfies_any(self, options) -> bool:
        return any(getattr(self, self.OPTION_FLAGS[o]) for o in options)

    def to_dict(self) -> Dict[str, bool]:
        return {
            "slidingScale": self.sliding_scale,
            "freeCare": self.free_care,
            "acceptsInsurance": self.accepts_insurance,
            "acceptsMedicaid": self.accepts_medicaid,
            "acceptsMedicare": self.accepts_medicare,
            "financialAssistance": self.financial_assistance,
            "charityCare": self.charity_care,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PaymentOptions":
        data = require_mapping(data, "paymentOptions")
        defaults = cls()
        return cls(
            sliding_scale=bool(data.get("slidingScale", defaults.sliding_scale)),
            free_care=bool(data.get("freeCare", defaults.free_care)),
            accepts_insurance=bool(data.get("acceptsInsurance", defaults.accepts_insurance)),
            accepts_medicaid=bool(data.get("acceptsMedicaid", defaults.accepts_medicaid)),
            accepts_medicare=bool(data.get("acceptsMedicare", defaults.accepts_medicare)),
            financial_assistance=bool(data.get("financialAssistance", defaults.financial_assistance)),
            charity_care=bool(data.get("charityCare", defaults.charity_care)),
        )


@dataclass
class ProcedureCost:
    procedure_name: str
    average_cost: float
    min_cost: float
    max_cost: float
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "procedureName": self.procedure_name,
            "averageCost": self.average_cost,
            "minCost": self.min_cost,
            "maxCost": self.max_cost,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcedureCost":
        if not isinstance(data, dict):
            raise ValidationError("Invalid procedure cost entry: expected an object")
        try:
            return cls(
                procedure_name=str(data["procedureName"]),
                average_cost=float(data["averageCost"]),
                min_cost=float(data["minCost"]),
                max_cost=float(data["maxCost"]),
                description=data.get("description") or "",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid procedure cost entry: {e}")


@dataclass
class Ratings:
    overall: float = 0.0
    cost_value: float = 0.0
    quality_of_care: float = 0.0
    review_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "costValue": self.cost_value,
            "qualityOfCare": self.quality_of_care,
            "reviewCount": self.review_count,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Ratings":
        data = require_mapping(data, "ratings")
        return cls(
            overall=float(data.get("overall", 0)),
            cost_value=float(data.get("costValue", 0)),
            quality_of_care=float(data.get("qualityOfCare", 0)),
            review_count=int(data.get("reviewCount", 0)),
        )


@dataclass
class Accessibility:
    wheelchair_accessible: bool = False
    interpreter_services: bool = False
    public_transport_access: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "wheelchairAccessible": self.wheelchair_accessible,
            "interpreterServices": self.interpreter_services,
            "publicTransportAccess": self.public_transport_access,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Accessibility":
        data = require_mapping(data, "accessibility")
        return cls(
            wheelchair_accessible=bool(data.get("wheelchairAccessible", False)),
            interpreter_services=bool(data.get("interpreterServices", False)),
            public_transport_access=bool(data.get("publicTransportAccess", False)),
        )


def _parse_cost_level(value: Any) -> int:
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"costLevel must be an integer 0-3, got {value!r}")
    if not 0 <= level <= 3:
        raise ValidationError(f"costLevel must be between 0 and 3, got {level}")
    return level


def _parse_hours(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    data = require_mapping(data, "hours")
    unknown = set(data) - set(WEEKDAYS)
    if unknown:
        raise ValidationError(f"Unknown weekday(s) in hours: {', '.join(sorted(unknown))}")
    return {day: str(data[day]) for day in WEEKDAYS if data.get(day)}


@dataclass
class PersistedFacility:
    """A curated directory record. Never hard-deleted; `active` is the soft-delete marker."""
    name: str
    facility_type: FacilityType
    coordinate: Coordinate
    address: Address = field(default_factory=Address)
    contact: Contact = field(default_factory=Contact)
    hours: Dict[str, str] = field(default_factory=dict)
    services: List[str] = field(default_factory=list)
    cost_level: int = 3  # 0 very low, 1 low, 2 moderate, 3 standard
    payment_options: PaymentOptions = field(default_factory=PaymentOptions)
    procedure_costs: List[ProcedureCost] = field(default_factory=list)
    ratings: Ratings = field(default_factory=Ratings)
    accessibility: Accessibility = field(default_factory=Accessibility)
    osm_id: Optional[str] = None
    active: bool = True
    id: Optional[int] = None
    created_at: str = field(default_factory=_utcnow)
    updated_at: str = field(default_factory=_utcnow)

    def find_procedure(self, procedure_name: str) -> Optional[ProcedureCost]:
        wanted = procedure_name.strip().lower()
        for procedure in self.procedure_costs:
            if procedure.procedure_name.strip().lower() == wanted:
                return procedure
        return None

    def to_public_dict(self, distance_km: Optional[float] = None) -> Dict[str, Any]:
        public = {
            "id": self.id,
            "name": self.name,
            "facilityType": self.facility_type.value,
            "address": self.address.full_address(),
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "phone": self.contact.phone,
            "website": self.contact.website,
            "hours": dict(self.hours),
            "services": list(self.services),
            "costLevel": self.cost_level,
            "paymentOptions": self.payment_options.to_dict(),
            "ratings": self.ratings.to_dict(),
            "accessibility": self.accessibility.to_dict(),
            "active": self.active,
        }
        if distance_km is not None:
            public["distanceKm"] = round(distance_km, 3)
        return public

    def to_dict(self) -> Dict[str, Any]:
        """Full record, used for storage and admin responses."""
        return {
            "id": self.id,
            "name": self.name,
            "facilityType": self.facility_type.value,
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "address": self.address.to_dict(),
            "contact": self.contact.to_dict(),
            "hours": dict(self.hours),
            "services": list(self.services),
            "costLevel": self.cost_level,
            "paymentOptions": self.payment_options.to_dict(),
            "procedureCosts": [p.to_dict() for p in self.procedure_costs],
            "ratings": self.ratings.to_dict(),
            "accessibility": self.accessibility.to_dict(),
            "osmId": self.osm_id,
            "active": self.active,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedFacility":
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Facility name is required")
        if "facilityType" not in data:
            raise ValidationError("facilityType is required")
        try:
            coordinate = Coordinate(float(data["lat"]), float(data["lon"]))
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Facility coordinates (lat, lon) are required")

        facility = cls(
            name=name,
            facility_type=FacilityType.parse(data["facilityType"]),
            coordinate=coordinate,
            address=Address.from_dict(data.get("address")),
            contact=Contact.from_dict(data.get("contact")),
            hours=_parse_hours(data.get("hours")),
            services=[str(s) for s in _require_list(data.get("services"), "services")],
            cost_level=_parse_cost_level(data.get("costLevel", 3)),
            payment_options=PaymentOptions.from_dict(data.get("paymentOptions")),
            procedure_costs=[ProcedureCost.from_dict(p)
                             for p in _require_list(data.get("procedureCosts"), "procedureCosts")],
            ratings=Ratings.from_dict(data.get("ratings")),
            accessibility=Accessibility.from_dict(data.get("accessibility")),
            osm_id=data.get("osmId"),
            active=bool(data.get("active", True)),
            id=data.get("id"),
        )
        if data.get("createdAt"):
            facility.created_at = data["createdAt"]
        if data.get("updatedAt"):
            facility.updated_at = data["updatedAt"]
        return facility
