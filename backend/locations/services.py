"""
Location index: exact and proximity lookups over Location records.

Proximity queries narrow the candidate rows with a latitude/longitude
bounding box in SQL, then compute exact Haversine distances in Python.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.conf import settings
from django.db.models import Count, Q

from common.exceptions import NotFoundError
from common.utils import bounding_box, distance_km
from locations.models import Location
from services.matching.cache import MatchCache, get_match_cache

logger = logging.getLogger(__name__)


class LocationNotFoundError(NotFoundError):
    """Raised when a referenced location does not exist."""
    error_code = "location_not_found"


@dataclass
class NearbyLocation:
    """A location together with its distance from the query point."""
    location: Location
    distance_km: float


def default_radius_km() -> float:
    return settings.AIRBAR.get("NEARBY_RADIUS_KM", 50)


def bbox_q(lat, lon, radius_km: float, field_prefix: str = "") -> Q:
    """
    Q filter keeping rows whose coordinates fall inside the degree box
    around (lat, lon). ``field_prefix`` points at a related Location,
    e.g. ``"origin__"``.
    """
    min_lat, max_lat, min_lon, max_lon, use_lon = bounding_box(lat, lon, radius_km)
    q = Q(**{
        f"{field_prefix}latitude__gte": min_lat,
        f"{field_prefix}latitude__lte": max_lat,
    })
    if use_lon:
        q &= Q(**{
            f"{field_prefix}longitude__gte": min_lon,
            f"{field_prefix}longitude__lte": max_lon,
        })
    return q


class LocationIndex:
    """
    Stores and queries Location records.

    The cache handle is injected; it defaults to the shared MatchCache.
    """

    def __init__(self, cache: Optional[MatchCache] = None):
        self._cache = cache or get_match_cache()

    # ---------------------- Lookups by id ----------------------

    def get_location(self, location_id) -> Location:
        """Fetch a location by id, cached for an hour."""
        cache_key = MatchCache.location_key(location_id)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            location = Location.objects.get(id=location_id)
        except (Location.DoesNotExist, ValueError, TypeError):
            raise LocationNotFoundError(f"Location {location_id} not found")

        self._cache.set(cache_key, location, MatchCache.LONG)
        return location

    def find_exact(self, origin_id, destination_id) -> Tuple[Location, Location]:
        """Resolve both route endpoints by id."""
        if origin_id is None or destination_id is None:
            raise LocationNotFoundError("Both route endpoints are required")

        try:
            origin_pk, destination_pk = int(origin_id), int(destination_id)
        except (TypeError, ValueError):
            raise LocationNotFoundError("Route endpoints must be location ids")

        locations = Location.objects.in_bulk([origin_pk, destination_pk])
        origin = locations.get(origin_pk)
        destination = locations.get(destination_pk)
        if origin is None:
            raise LocationNotFoundError(f"Origin location {origin_id} not found")
        if destination is None:
            raise LocationNotFoundError(f"Destination location {destination_id} not found")
        return origin, destination

    # ---------------------- Proximity ----------------------

    def find_nearby(
        self,
        lat: float,
        lon: float,
        radius_km: Optional[float] = None,
        limit: Optional[int] = 20,
    ) -> List[NearbyLocation]:
        """
        Locations within radius_km of (lat, lon), closest first, capped at limit
        (None returns every match). Cached for the MEDIUM tier like the match
        results built from it.
        """
        radius_km = default_radius_km() if radius_km is None else radius_km

        cache_key = MatchCache.nearby_locations_key(lat, lon, radius_km)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached[:limit]

        candidates: List[NearbyLocation] = []
        for location in Location.objects.filter(bbox_q(lat, lon, radius_km)):
            distance = distance_km(lat, lon, location.latitude, location.longitude)
            if distance <= radius_km:
                candidates.append(NearbyLocation(location=location, distance_km=distance))

        candidates.sort(key=lambda item: item.distance_km)

        self._cache.set(cache_key, candidates, MatchCache.MEDIUM)
        return candidates[:limit]

    # ---------------------- Search ----------------------

    def search(
        self,
        city: Optional[str] = None,
        country: Optional[str] = None,
        country_code: Optional[str] = None,
        location_type: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        radius_km: Optional[float] = None,
        limit: int = 20,
    ) -> List[Location]:
        qs = Location.objects.all()

        if city:
            qs = qs.filter(city__icontains=city)
        if country:
            qs = qs.filter(country__icontains=country)
        if country_code:
            qs = qs.filter(country_code__iexact=country_code)
        if location_type:
            qs = qs.filter(type=location_type)

        if latitude is not None and longitude is not None and radius_km:
            qs = qs.filter(bbox_q(latitude, longitude, radius_km))
            return [
                location for location in qs.order_by("name")
                if distance_km(latitude, longitude, location.latitude, location.longitude) <= radius_km
            ][:limit]

        return list(qs.order_by("name")[:limit])

    def airports(self) -> List[Location]:
        return list(Location.objects.filter(type="AIRPORT").order_by("name"))

    # ---------------------- Route analytics ----------------------

    def popular_routes(self, limit: int = 10) -> List[dict]:
        """
        Origin/destination pairs ordered by combined trip and package activity.
        """
        cache_key = MatchCache.popular_routes_key()
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached[:limit]

        from trips.models import Trip
        from parcels.models import Package

        activity = {}
        for model in (Trip, Package):
            rows = (
                model.objects.values("origin_id", "destination_id")
                .annotate(total=Count("id"))
            )
            for row in rows:
                key = (row["origin_id"], row["destination_id"])
                activity[key] = activity.get(key, 0) + row["total"]

        ranked = sorted(activity.items(), key=lambda item: item[1], reverse=True)
        location_ids = {loc_id for pair, _ in ranked for loc_id in pair}
        locations = Location.objects.in_bulk(location_ids)

        routes = []
        for (origin_id, destination_id), total in ranked:
            if origin_id == destination_id:
                continue
            origin = locations[origin_id]
            destination = locations[destination_id]
            routes.append({
                "origin_id": origin.id,
                "origin_name": origin.name,
                "origin_city": origin.city,
                "origin_airport_code": origin.airport_code,
                "destination_id": destination.id,
                "destination_name": destination.name,
                "destination_city": destination.city,
                "destination_airport_code": destination.airport_code,
                "total_activity": total,
            })

        self._cache.set(cache_key, routes, MatchCache.DAILY)
        return routes[:limit]

    def route_stats(self, origin_id, destination_id) -> dict:
        """Active trips, pending packages and delivered matches on one route."""
        cache_key = MatchCache.route_stats_key(origin_id, destination_id)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        from trips.models import Trip
        from parcels.models import Package
        from matches.models import Match

        stats = {
            "active_trips": Trip.objects.filter(
                origin_id=origin_id, destination_id=destination_id, status="ACTIVE"
            ).count(),
            "pending_packages": Package.objects.filter(
                origin_id=origin_id, destination_id=destination_id, status="PENDING"
            ).count(),
            "completed_deliveries": Match.objects.filter(
                trip__origin_id=origin_id,
                trip__destination_id=destination_id,
                status="delivered",
            ).count(),
        }

        self._cache.set(cache_key, stats, MatchCache.SHORT)
        return stats


def get_location_index() -> LocationIndex:
    return LocationIndex()
