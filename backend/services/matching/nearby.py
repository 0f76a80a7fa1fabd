"""
Two-endpoint proximity search.

A candidate is "nearby" when its origin lies within the radius of the
reference origin AND its destination lies within the radius of the
reference destination. Candidates are ordered by the sum of both
distances, closest first.

Location proximity comes from the LocationIndex, so each pass costs two
cached location lookups plus one indexed query on origin/destination ids.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

logger = logging.getLogger(__name__)

NEARBY_RESULT_LIMIT = 20


@dataclass
class NearbyCandidate:
    """A trip or package with its distances to the reference route."""
    entity: Any
    origin_distance_km: float
    destination_distance_km: float

    @property
    def total_distance_km(self) -> float:
        return self.origin_distance_km + self.destination_distance_km


def _resolve(index, radius_km):
    from locations.services import default_radius_km, get_location_index

    if index is None:
        index = get_location_index()
    if radius_km is None:
        radius_km = default_radius_km()
    return index, radius_km


def _distances_around(index, location, radius_km: float) -> Dict[int, float]:
    """Map of location id -> distance for every location within radius_km."""
    nearby = index.find_nearby(location.latitude, location.longitude, radius_km, limit=None)
    return {item.location.id: item.distance_km for item in nearby}


def rank_by_route_distance(
    entities: Iterable,
    origin_distances: Dict[int, float],
    destination_distances: Dict[int, float],
    radius_km: float,
    limit: int = NEARBY_RESULT_LIMIT,
) -> List[NearbyCandidate]:
    """
    Keep entities whose endpoints both fall within radius_km, sorted by
    summed distance and capped at limit.
    """
    candidates: List[NearbyCandidate] = []
    for entity in entities:
        origin_distance = origin_distances.get(entity.origin_id)
        destination_distance = destination_distances.get(entity.destination_id)
        if origin_distance is None or destination_distance is None:
            continue
        if origin_distance > radius_km or destination_distance > radius_km:
            continue
        candidates.append(NearbyCandidate(entity, origin_distance, destination_distance))

    # Ties keep a stable id order
    candidates.sort(key=lambda c: (c.total_distance_km, c.entity.id))
    return candidates[:limit]


def find_nearby_packages(
    origin,
    destination,
    max_weight,
    radius_km: Optional[float] = None,
    limit: int = NEARBY_RESULT_LIMIT,
    index=None,
) -> List[NearbyCandidate]:
    """
    Pending, unexpired packages that fit in max_weight kg and travel
    between points near origin and near destination.
    """
    from parcels.models import Package

    index, radius_km = _resolve(index, radius_km)
    origin_distances = _distances_around(index, origin, radius_km)
    destination_distances = _distances_around(index, destination, radius_km)
    if not origin_distances or not destination_distances:
        return []

    packages = Package.objects.select_related("sender", "origin", "destination").filter(
        status="PENDING",
        weight__lte=max_weight,
        expires_at__gt=timezone.now(),
        origin_id__in=list(origin_distances),
        destination_id__in=list(destination_distances),
    )

    candidates = rank_by_route_distance(packages, origin_distances, destination_distances, radius_km, limit)
    logger.debug(
        "Nearby packages for route %s -> %s: %d within %skm",
        origin.id, destination.id, len(candidates), radius_km,
    )
    return candidates


def find_nearby_trips(
    origin,
    destination,
    package_weight,
    radius_km: Optional[float] = None,
    limit: int = NEARBY_RESULT_LIMIT,
    index=None,
) -> List[NearbyCandidate]:
    """
    Active, upcoming trips with at least package_weight kg free whose
    route starts near origin and ends near destination.
    """
    from trips.models import Trip

    index, radius_km = _resolve(index, radius_km)
    origin_distances = _distances_around(index, origin, radius_km)
    destination_distances = _distances_around(index, destination, radius_km)
    if not origin_distances or not destination_distances:
        return []

    trips = Trip.objects.select_related("traveler", "origin", "destination").filter(
        status="ACTIVE",
        space_available__gte=package_weight,
        departure_date__gte=timezone.now(),
        origin_id__in=list(origin_distances),
        destination_id__in=list(destination_distances),
    )

    candidates = rank_by_route_distance(trips, origin_distances, destination_distances, radius_km, limit)
    logger.debug(
        "Nearby trips for route %s -> %s: %d within %skm",
        origin.id, destination.id, len(candidates), radius_km,
    )
    return candidates
