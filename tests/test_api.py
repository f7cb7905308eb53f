"""
HTTP surface tests: envelopes, status codes and routing
"""

import logging
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from data_sources.cache import TTLCache
from data_sources.error_handling import LocationNotFound, UpstreamUnavailable
from data_sources.osm_api import OverpassClient
from main import app, get_cache, get_geocoder, get_overpass, get_search, get_store


ELEMENTS = [
    {"type": "node", "id": 11, "lat": 40.7200, "lon": -74.0060,
     "tags": {"amenity": "clinic", "name": "Sliding Clinic", "payment:sliding_scale": "yes"}},
    {"type": "node", "id": 12, "lat": 40.7140, "lon": -74.0060,
     "tags": {"amenity": "hospital", "name": "Closest Hospital"}},
]

FACILITY = {
    "name": "Harbor Community Clinic",
    "facilityType": "clinic",
    "address": {"street": "12 Main St", "city": "New York", "state": "NY", "zipCode": "10001"},
    "paymentOptions": {"slidingScale": True},
    "procedureCosts": [
        {"procedureName": "General Health Checkup", "averageCost": 1000, "minCost": 500, "maxCost": 2000},
    ],
}


@pytest.fixture
def cache():
    return TTLCache(ttl_seconds=60)


@pytest.fixture
def overpass_session(fake_session, fake_response):
    fake_session.post.return_value = fake_response({"elements": ELEMENTS})
    return fake_session


@pytest.fixture
def client(geocoder, store, settings, overpass_session, no_retry, cache):
    overpass = OverpassClient(settings, session=overpass_session,
                              retry_configs={"healthcare": no_retry, "details": no_retry})
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.dependency_overrides[get_overpass] = lambda: overpass
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_cache] = lambda: cache
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["service"] == "CareConnect API"


def test_health_reports_cache(client):
    body = client.get("/health").json()
    assert body["success"] is True
    assert body["cache_stats"]["backend"] == "memory"


def test_search_providers(client):
    res = client.post("/search-providers", json={"location": "New York", "radius": 5})
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["location"] == "New York, NY, USA"
    assert body["searchCoordinates"] == {"lat": 40.7128, "lon": -74.006}
    assert body["totalProviders"] == 2
    assert [p["name"] for p in body["providers"]] == ["Closest Hospital", "Sliding Clinic"]
    assert body["providers"][0]["distanceKm"] < body["providers"][1]["distanceKm"]


def test_search_providers_payment_filter(client):
    res = client.post("/search-providers", json={
        "location": "New York", "careType": "clinic", "paymentOptions": ["slidingScale"],
    })
    body = res.json()
    assert body["radius"] == 10.0
    assert [p["name"] for p in body["providers"]] == ["Sliding Clinic"]
    assert body["providers"][0]["paymentInfo"]["slidingScale"] == "Yes"


@pytest.mark.parametrize("payload", [
    {},
    {"location": ""},
    {"location": "New York", "radius": 0},
    {"location": "New York", "radius": "far"},
    {"location": "New York", "paymentOptions": ["bitcoin"]},
])
def test_search_providers_bad_request(client, payload):
    res = client.post("/search-providers", json=payload)
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["error"]


def test_location_not_found_is_400(client):
    geocoder = MagicMock()
    geocoder.geocode.side_effect = LocationNotFound("Location not found: Atlantis")
    app.dependency_overrides[get_geocoder] = lambda: geocoder

    res = client.post("/search-providers", json={"location": "Atlantis"})

    assert res.status_code == 400
    assert res.json() == {"success": False, "error": "Location not found: Atlantis"}


def test_upstream_failure_is_server_error(client):
    overpass = MagicMock()
    overpass.query_healthcare_facilities.side_effect = UpstreamUnavailable("overpass request timed out", "overpass")
    app.dependency_overrides[get_overpass] = lambda: overpass

    res = client.post("/search-providers", json={"location": "New York"})

    assert res.status_code == 500
    assert res.json()["success"] is False


def test_unexpected_error_is_generic_500(client, caplog):
    caplog.set_level(logging.ERROR, logger="careconnect")
    broken = MagicMock()
    broken.search.side_effect = RuntimeError("database exploded")
    app.dependency_overrides[get_search] = lambda: broken

    with TestClient(app, raise_server_exceptions=False) as c:
        res = c.post("/search-providers", json={"location": "New York"})

    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Server Error"}

    record = next(r for r in caplog.records if r.name == "careconnect.main")
    assert record.exc_info is not None
    assert record.exc_info[0] is RuntimeError
    assert "Traceback" in caplog.text
    assert "database exploded" in caplog.text


def test_facility_crud(client):
    res = client.post("/facilities", json=FACILITY)
    assert res.status_code == 201
    created = res.json()["data"]
    facility_id = created["id"]
    assert created["lat"] == 40.7128
    assert created["address"]["formatted"] == "New York, NY, USA"

    assert client.get(f"/facilities/{facility_id}").json()["data"]["name"] == FACILITY["name"]

    res = client.put(f"/facilities/{facility_id}", json={"name": "Harbor Clinic", "costLevel": 1})
    assert res.status_code == 200
    assert res.json()["data"]["name"] == "Harbor Clinic"

    listing = client.get("/facilities").json()
    assert listing["count"] == 1

    res = client.delete(f"/facilities/{facility_id}")
    assert res.json()["success"] is True
    assert client.get("/facilities").json()["count"] == 0
    assert client.get(f"/facilities/{facility_id}").json()["data"]["active"] is False


def test_facility_not_found(client):
    for method in ("get", "delete"):
        res = getattr(client, method)("/facilities/999")
        assert res.status_code == 404
        assert res.json() == {"success": False, "error": "Facility not found"}
    assert client.put("/facilities/999", json={"name": "x"}).status_code == 404


def test_create_facility_validation(client):
    res = client.post("/facilities", json={**FACILITY, "facilityType": "spa"})
    assert res.status_code == 400
    assert "facilityType" in res.json()["error"]


@pytest.mark.parametrize("changes", [
    {"address": "12 Main St, New York"},
    {"paymentOptions": ["slidingScale"]},
    {"hours": ["monday"]},
    {"procedureCosts": "General Health Checkup"},
])
def test_create_facility_rejects_wrongly_shaped_body(client, changes):
    res = client.post("/facilities", json={**FACILITY, **changes})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert next(iter(changes)) in body["error"]
    assert client.get("/facilities").json()["count"] == 0


def test_update_facility_rejects_wrongly_shaped_body(client):
    facility_id = client.post("/facilities", json=FACILITY).json()["data"]["id"]
    for changes in ({"address": "1 Atlantic Ave, Brooklyn"}, {"paymentOptions": ["freeCare"]}):
        res = client.put(f"/facilities/{facility_id}", json=changes)
        assert res.status_code == 400
        assert res.json()["success"] is False
    data = client.get(f"/facilities/{facility_id}").json()["data"]
    assert data["address"]["street"] == "12 Main St"
    assert data["paymentOptions"]["slidingScale"] is True


def test_directory_search(client):
    client.post("/facilities", json=FACILITY)
    res = client.post("/facilities/search", json={"location": "10001", "paymentOptions": ["slidingScale"]})
    body = res.json()
    assert body["success"] is True
    assert body["totalProviders"] == 1
    assert body["providers"][0]["name"] == FACILITY["name"]
    assert body["providers"][0]["distanceKm"] == 0.0


def test_osm_details(client, overpass_session, fake_response):
    overpass_session.post.return_value = fake_response({"elements": [ELEMENTS[0]]})
    res = client.get("/osm/node/11")
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["name"] == "Sliding Clinic"
    assert data["distanceKm"] is None


def test_osm_details_errors(client, overpass_session, fake_response):
    assert client.get("/osm/area/11").status_code == 400
    overpass_session.post.return_value = fake_response({"elements": []})
    assert client.get("/osm/node/999").status_code == 404


def test_cost_compare(client):
    client.post("/facilities", json=FACILITY)
    res = client.post("/cost-compare", json={
        "procedureName": "general health checkup", "zipCode": "10001", "insuranceType": "medicaid",
    })
    body = res.json()
    assert body["success"] is True
    assert body["disclaimer"]
    assert body["insuranceType"] == "medicaid"
    provider = body["providers"][0]
    assert (provider["averageCost"], provider["minCost"], provider["maxCost"]) == (400, 200, 800)
    assert provider["discountLabel"] == "60% Medicaid Rate"


def test_cost_compare_requires_zip(client):
    res = client.post("/cost-compare", json={"procedureName": "X-Ray"})
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_procedures(client):
    body = client.get("/procedures").json()
    assert body["success"] is True
    assert any(p["name"] == "Complete Blood Count" for p in body["data"])


def test_clear_cache(client, cache):
    cache.set("geocode:new york", {"lat": 40.7, "lon": -74.0, "displayName": "NYC"})
    res = client.post("/cache/clear")
    assert res.json() == {"success": True, "message": "Cleared 1 cache entries"}
    assert cache.stats()["entries"] == 0
