import pytest

from data_sources.utils import bounding_box, haversine_distance, km_to_miles, miles_to_km


def test_distance_to_self_is_zero():
    assert haversine_distance(40.7128, -74.0060, 40.7128, -74.0060) == 0.0


def test_distance_is_symmetric():
    a = haversine_distance(51.5074, -0.1278, 48.8566, 2.3522)
    b = haversine_distance(48.8566, 2.3522, 51.5074, -0.1278)
    assert a == pytest.approx(b)


def test_london_paris_distance_km():
    d = haversine_distance(51.5074, -0.1278, 48.8566, 2.3522)
    assert 342.0 < d < 345.0


def test_one_degree_of_latitude():
    # 2*pi*6371/360
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_unit_conversions():
    assert km_to_miles(1.609344) == pytest.approx(1.0)
    assert miles_to_km(10) == pytest.approx(16.09344)
    assert km_to_miles(miles_to_km(3.2)) == pytest.approx(3.2)


def test_bounding_box_contains_circle():
    lat, lon, radius = 40.7128, -74.0060, 10.0
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius)
    assert min_lat < lat < max_lat
    assert min_lon < lon < max_lon
    # Points exactly radius away along each axis sit inside the box
    assert haversine_distance(lat, lon, max_lat, lon) == pytest.approx(radius, rel=1e-6)
    assert haversine_distance(lat, lon, lat, max_lon) >= radius - 1e-6


def test_bounding_box_across_antimeridian_spans_all_longitudes():
    _, _, min_lon, max_lon = bounding_box(-17.0, 179.95, 25.0)
    assert (min_lon, max_lon) == (-180.0, 180.0)


def test_bounding_box_at_pole_spans_all_longitudes():
    min_lat, max_lat, min_lon, max_lon = bounding_box(89.99, 10.0, 5.0)
    assert max_lat == 90.0
    assert (min_lon, max_lon) == (-180.0, 180.0)
