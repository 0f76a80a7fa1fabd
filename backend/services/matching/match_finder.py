"""
Trip <-> package matching.

Each search runs two passes and merges them:
    1. Exact pass: same origin and destination location ids.
    2. Nearby pass: both endpoints within the nearby radius.

Exact matches come first; nearby matches follow in distance order and
never repeat an id already present. Results are cached for 30 minutes
(MEDIUM tier) and only invalidated by TTL.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from django.utils import timezone

from .cache import MatchCache, get_match_cache
from .nearby import NEARBY_RESULT_LIMIT, NearbyCandidate, find_nearby_packages, find_nearby_trips

logger = logging.getLogger(__name__)

MATCH_TYPE_EXACT = "exact"
MATCH_TYPE_NEARBY = "nearby"


@dataclass
class MatchCandidate:
    """One search result: the trip or package plus how it matched."""
    entity: Any
    match_type: str
    origin_distance_km: float = 0.0
    destination_distance_km: float = 0.0


def merge_candidates(exact: List[Any], nearby: List[NearbyCandidate]) -> List[MatchCandidate]:
    """Exact entities first, then nearby ones not already present (by id)."""
    seen = set()
    merged: List[MatchCandidate] = []

    for entity in exact:
        if entity.id in seen:
            continue
        seen.add(entity.id)
        merged.append(MatchCandidate(entity=entity, match_type=MATCH_TYPE_EXACT))

    for candidate in nearby:
        if candidate.entity.id in seen:
            continue
        seen.add(candidate.entity.id)
        merged.append(MatchCandidate(
            entity=candidate.entity,
            match_type=MATCH_TYPE_NEARBY,
            origin_distance_km=candidate.origin_distance_km,
            destination_distance_km=candidate.destination_distance_km,
        ))

    return merged


class MatchFinder:
    """
    Finds packages for a trip and trips for a package.

    Collaborators are injected so tests can swap the cache or the index.
    """

    def __init__(self, cache: Optional[MatchCache] = None, index=None, radius_km: Optional[float] = None,
                 nearby_limit: int = NEARBY_RESULT_LIMIT):
        self.cache = cache or get_match_cache()
        self.index = index
        self.radius_km = radius_km
        self.nearby_limit = nearby_limit

    def _get_index(self):
        if self.index is None:
            from locations.services import LocationIndex
            self.index = LocationIndex(cache=self.cache)
        return self.index

    # ---------------------- Trip -> packages ----------------------

    def find_matching_packages(self, trip_id) -> List[MatchCandidate]:
        """
        Pending packages a trip could carry.

        Raises:
            TripNotFoundError: If the trip does not exist
        """
        from trips.models import Trip
        from trips.services import TripNotFoundError
        from parcels.models import Package

        cache_key = MatchCache.trip_matches_key(trip_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            trip = Trip.objects.select_related("origin", "destination").get(id=trip_id)
        except (Trip.DoesNotExist, ValueError, TypeError):
            raise TripNotFoundError(f"Trip {trip_id} not found")

        exact = list(
            Package.objects.select_related("sender", "origin", "destination")
            .filter(
                origin_id=trip.origin_id,
                destination_id=trip.destination_id,
                status="PENDING",
                weight__lte=trip.space_available,
                expires_at__gt=timezone.now(),
            )
            .order_by("-urgent", "created_at", "id")
        )

        nearby = find_nearby_packages(
            trip.origin,
            trip.destination,
            trip.space_available,
            radius_km=self.radius_km,
            limit=self.nearby_limit,
            index=self._get_index(),
        )

        results = merge_candidates(exact, nearby)
        logger.info(
            "Trip %s matched %d package(s) (%d exact, %d nearby)",
            trip.id, len(results), len(exact), len(results) - len(exact),
        )

        self.cache.set(cache_key, results, MatchCache.MEDIUM)
        return results

    # ---------------------- Package -> trips ----------------------

    def find_matching_trips(self, package_id) -> List[MatchCandidate]:
        """
        Upcoming active trips with room for a package.

        Raises:
            PackageNotFoundError: If the package does not exist
        """
        from parcels.models import Package
        from parcels.services import PackageNotFoundError
        from trips.models import Trip

        cache_key = MatchCache.package_matches_key(package_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            package = Package.objects.select_related("origin", "destination").get(id=package_id)
        except (Package.DoesNotExist, ValueError, TypeError):
            raise PackageNotFoundError(f"Package {package_id} not found")

        exact = list(
            Trip.objects.select_related("traveler", "origin", "destination")
            .filter(
                origin_id=package.origin_id,
                destination_id=package.destination_id,
                status="ACTIVE",
                space_available__gte=package.weight,
                departure_date__gte=timezone.now(),
            )
            .order_by("departure_date", "id")
        )

        nearby = find_nearby_trips(
            package.origin,
            package.destination,
            package.weight,
            radius_km=self.radius_km,
            limit=self.nearby_limit,
            index=self._get_index(),
        )

        results = merge_candidates(exact, nearby)
        logger.info(
            "Package %s matched %d trip(s) (%d exact, %d nearby)",
            package.id, len(results), len(exact), len(results) - len(exact),
        )

        self.cache.set(cache_key, results, MatchCache.MEDIUM)
        return results


# ---------------------- Module-level entry points ----------------------

def find_matching_packages(trip_id) -> List[MatchCandidate]:
    return MatchFinder().find_matching_packages(trip_id)


def find_matching_trips(package_id) -> List[MatchCandidate]:
    return MatchFinder().find_matching_trips(package_id)
