"""Common utility functions."""

from .geo import distance_km, bounding_box, EARTH_RADIUS_KM

__all__ = [
    "distance_km",
    "bounding_box",
    "EARTH_RADIUS_KM",
]
