"""
Haversine distance for health unit proximity queries.

A single distance function backs both the "within radius" test and the sort key.
"""
import math
from typing import NamedTuple

# Earth radius in km (WGS84 approximate)
EARTH_RADIUS_KM = 6371.0
# One degree of latitude, as used to size the rounded-degree prefilter cells
KM_PER_DEGREE = 112.12

LAT_MIN, LAT_MAX = -90.0, 90.0
LNG_MIN, LNG_MAX = -180.0, 180.0


class GeoPoint(NamedTuple):
    lat: float
    lng: float


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Return great-circle distance between two points in kilometers.
    Arguments in degrees.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Return great-circle distance in meters between two points."""
    return haversine_distance_km(a.lat, a.lng, b.lat, b.lng) * 1000.0


def is_valid_point(point: GeoPoint) -> bool:
    return LAT_MIN <= point.lat <= LAT_MAX and LNG_MIN <= point.lng <= LNG_MAX
