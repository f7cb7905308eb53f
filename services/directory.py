"""
Facility Directory
Administrative create/read/update/soft-delete over curated facilities.

Addresses are geocoded on create, and again on update only when an address
field actually changes.
"""

from typing import Any, Dict, List

from data_sources.error_handling import NotFoundError, ValidationError
from data_sources.facility_store import FacilityStore
from data_sources.geocoding import NominatimGeocoder
from data_sources.models import Address, FacilityType, PersistedFacility, require_mapping
from logging_config import get_logger

logger = get_logger(__name__)

# Fields an update may not touch directly
_READ_ONLY_FIELDS = {"id", "lat", "lon", "ratings", "active", "createdAt", "updatedAt"}


class FacilityDirectory:

    def __init__(self, store: FacilityStore, geocoder: NominatimGeocoder):
        self.store = store
        self.geocoder = geocoder

    def _geocode_address(self, address: Address) -> Dict[str, Any]:
        query = address.geocoding_query()
        if not query:
            raise ValidationError("Facility address is required")
        result = self.geocoder.geocode(query)
        return {"lat": result.latitude, "lon": result.longitude, "formatted": result.display_name}

    def list(self) -> List[PersistedFacility]:
        return self.store.list_active()

    def get(self, facility_id: int) -> PersistedFacility:
        facility = self.store.find_by_id(facility_id)
        if facility is None:
            raise NotFoundError("Facility not found")
        return facility

    def create(self, data: Dict[str, Any]) -> PersistedFacility:
        data = {k: v for k, v in require_mapping(data, "facility").items() if k not in _READ_ONLY_FIELDS}
        # Reject obviously bad records before spending a geocoder call
        if not (data.get("name") or "").strip():
            raise ValidationError("Facility name is required")
        if "facilityType" not in data:
            raise ValidationError("facilityType is required")
        FacilityType.parse(data["facilityType"])

        address = Address.from_dict(data.get("address"))
        geo = self._geocode_address(address)

        data["lat"], data["lon"] = geo["lat"], geo["lon"]
        data["address"] = {**address.to_dict(), "formatted": geo["formatted"]}
        facility = PersistedFacility.from_dict(data)
        return self.store.create(facility)

    def update(self, facility_id: int, changes: Dict[str, Any]) -> PersistedFacility:
        current = self.get(facility_id)
        changes = {k: v for k, v in require_mapping(changes, "facility").items()
                   if k not in _READ_ONLY_FIELDS}

        merged = current.to_dict()
        merged.update(changes)

        if "address" in changes:
            address_changes = require_mapping(changes["address"], "address")
            new_address = Address.from_dict({**current.address.to_dict(), **address_changes, "formatted": ""})
            if new_address.location_fields() != current.address.location_fields():
                logger.info(f"Address changed for facility {facility_id}, re-geocoding",
                            extra={"facility_id": facility_id})
                geo = self._geocode_address(new_address)
                merged["lat"], merged["lon"] = geo["lat"], geo["lon"]
                merged["address"] = {**new_address.to_dict(), "formatted": geo["formatted"]}
            else:
                merged["address"] = current.address.to_dict()

        facility = PersistedFacility.from_dict(merged)
        facility.created_at = current.created_at
        updated = self.store.update(facility_id, facility)
        if updated is None:
            raise NotFoundError("Facility not found")
        return updated

    def delete(self, facility_id: int) -> None:
        if not self.store.soft_delete(facility_id):
            raise NotFoundError("Facility not found")
