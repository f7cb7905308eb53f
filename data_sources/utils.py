"""
Shared utilities for CareConnect data sources
Distance calculations and unit conversions
"""

import math

EARTH_RADIUS_KM = 6371.0  # Mean Earth radius
KM_PER_MILE = 1.609344


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in kilometers using the Haversine formula.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = math.sin(delta_phi/2)**2 + math.cos(phi1) * \
        math.cos(phi2) * math.sin(delta_lambda/2)**2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

    return EARTH_RADIUS_KM * c


def km_to_miles(km: float) -> float:
    return km / KM_PER_MILE


def miles_to_km(miles: float) -> float:
    return miles * KM_PER_MILE


def bounding_box(lat: float, lon: float, radius_km: float):
    """
    Lat/lon box that fully contains the circle of `radius_km` around (lat, lon).

    Used as a cheap prefilter before the exact haversine check.

    Returns:
        (min_lat, max_lat, min_lon, max_lon)
    """
    angular = radius_km / EARTH_RADIUS_KM
    delta_lat = math.degrees(angular)
    min_lat = max(-90.0, lat - delta_lat)
    max_lat = min(90.0, lat + delta_lat)

    cos_lat = math.cos(math.radians(lat))
    # Circle touches or contains a pole: every longitude qualifies
    if max_lat >= 90.0 or min_lat <= -90.0 or math.sin(angular) >= cos_lat:
        return min_lat, max_lat, -180.0, 180.0
    # Longitude where the circle's tangent meridians touch it
    delta_lon = math.degrees(math.asin(math.sin(angular) / cos_lat))
    # Crossing the antimeridian: skip the longitude prefilter
    if lon - delta_lon < -180.0 or lon + delta_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, lon - delta_lon, lon + delta_lon
