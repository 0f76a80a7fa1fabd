"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
"""

from math import radians, cos, sin, asin, sqrt
from typing import Tuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points in kilometers
    using the Haversine formula.

    The result is symmetric and zero for identical coordinates. Inputs are
    degrees and are not validated: latitudes outside [-90, 90] or longitudes
    outside [-180, 180] give meaningless (but finite) results.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Clamp float error so asin never sees a value above 1
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * EARTH_RADIUS_KM


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float, bool]:
    """
    Degree box that contains every point within radius_km of (lat, lon).

    Used to narrow database queries before exact Haversine filtering.

    Returns:
        (min_lat, max_lat, min_lon, max_lon, use_longitude). When the box
        touches a pole or wraps the antimeridian the longitude bounds are not
        usable and use_longitude is False.
    """
    lat = float(lat)
    lon = float(lon)
    lat_offset = radius_km / KM_PER_DEGREE_LAT
    min_lat = max(-90.0, lat - lat_offset)
    max_lat = min(90.0, lat + lat_offset)

    if min_lat <= -89.0 or max_lat >= 89.0:
        return min_lat, max_lat, -180.0, 180.0, False

    # Widest longitude span sits at the latitude closest to a pole
    widest = max(abs(min_lat), abs(max_lat))
    lon_offset = radius_km / (KM_PER_DEGREE_LAT * cos(radians(widest)))
    min_lon = lon - lon_offset
    max_lon = lon + lon_offset

    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0, False

    return min_lat, max_lat, min_lon, max_lon, True
