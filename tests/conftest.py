"""
Shared fixtures: network-free fakes for Nominatim, Overpass and the store.
"""

from unittest.mock import MagicMock

import pytest

from config import Settings
from data_sources.facility_store import FacilityStore
from data_sources.models import GeocodeResult
from data_sources.retry_config import RetryProfile, get_retry_config


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200, headers=None, invalid_json=False):
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeGeocoder:
    """Resolves every location to the same point and records the queries."""

    def __init__(self, lat=40.7128, lon=-74.0060, display_name="New York, NY, USA"):
        self.result = GeocodeResult(lat, lon, display_name)
        self.calls = []

    def geocode(self, address):
        self.calls.append(address)
        return self.result


@pytest.fixture
def settings():
    return Settings(
        nominatim_url="https://nominatim.test/search",
        overpass_urls=["https://overpass-a.test/api/interpreter",
                       "https://overpass-b.test/api/interpreter"],
        user_agent="CareConnect-Test/1.0",
        geocoder_timeout=5.0,
        overpass_timeout=30.0,
        max_search_radius_km=50.0,
    )


@pytest.fixture
def no_retry():
    return get_retry_config("none", RetryProfile.NONE)


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return MagicMock()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def store(tmp_path):
    s = FacilityStore(str(tmp_path / "facilities.sqlite"))
    yield s
    s.close()


@pytest.fixture
def facility_payload():
    """Builds a directory record dict near the FakeGeocoder origin."""

    def _build(name="Downtown Clinic", lat=40.7150, lon=-74.0020, **overrides):
        data = {
            "name": name,
            "facilityType": "clinic",
            "lat": lat,
            "lon": lon,
            "address": {"street": "12 Main St", "city": "New York", "state": "NY", "zipCode": "10001"},
            "contact": {"phone": "+1 212 555 0100"},
            "paymentOptions": {"slidingScale": False},
            "procedureCosts": [
                {"procedureName": "General Health Checkup", "averageCost": 1000,
                 "minCost": 500, "maxCost": 2000},
            ],
        }
        data.update(overrides)
        return data

    return _build
