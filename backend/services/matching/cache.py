"""
Read-through cache for expensive candidate searches.

Wraps a Django cache backend (Redis in production, local memory in tests)
with TTL tiers and consistent key naming. Every operation degrades to a
cache miss when the backend is unavailable so callers fall back to direct
computation.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from django.core.cache import caches

logger = logging.getLogger(__name__)


# ---------------------- Configuration ----------------------

MATCH_CACHE_CONFIG = {
    # TTL tiers (seconds)
    "TTL_SHORT": 300,        # 5 min
    "TTL_MEDIUM": 1800,      # 30 min, match results and nearby location sets
    "TTL_LONG": 3600,        # 1 hour, single location lookups
    "TTL_DAILY": 86400,      # 24 hours, popular routes

    # Key prefixes
    "TRIP_MATCHES_PREFIX": "trip_matches:",
    "PACKAGE_MATCHES_PREFIX": "package_matches:",
    "LOCATION_PREFIX": "location:",
    "NEARBY_LOCATIONS_PREFIX": "nearby_locations:",
    "POPULAR_ROUTES_KEY": "popular_routes",
    "ROUTE_STATS_PREFIX": "route_stats:",
}

_MISS = object()


class MatchCache:
    """
    Key-value cache with TTL tiers.

    The backend is injected so services and tests can each use their own
    handle; it defaults to the "default" entry of settings.CACHES.
    """

    SHORT = MATCH_CACHE_CONFIG["TTL_SHORT"]
    MEDIUM = MATCH_CACHE_CONFIG["TTL_MEDIUM"]
    LONG = MATCH_CACHE_CONFIG["TTL_LONG"]
    DAILY = MATCH_CACHE_CONFIG["TTL_DAILY"]

    def __init__(self, backend=None):
        self._backend = backend if backend is not None else caches["default"]

    # ---------------------- Key builders ----------------------

    @staticmethod
    def trip_matches_key(trip_id) -> str:
        return f"{MATCH_CACHE_CONFIG['TRIP_MATCHES_PREFIX']}{trip_id}"

    @staticmethod
    def package_matches_key(package_id) -> str:
        return f"{MATCH_CACHE_CONFIG['PACKAGE_MATCHES_PREFIX']}{package_id}"

    @staticmethod
    def location_key(location_id) -> str:
        return f"{MATCH_CACHE_CONFIG['LOCATION_PREFIX']}{location_id}"

    @staticmethod
    def nearby_locations_key(lat: float, lon: float, radius_km: float) -> str:
        return (
            f"{MATCH_CACHE_CONFIG['NEARBY_LOCATIONS_PREFIX']}"
            f"{round(float(lat), 4)}:{round(float(lon), 4)}:{radius_km}"
        )

    @staticmethod
    def popular_routes_key() -> str:
        return MATCH_CACHE_CONFIG["POPULAR_ROUTES_KEY"]

    @staticmethod
    def route_stats_key(origin_id, destination_id) -> str:
        return f"{MATCH_CACHE_CONFIG['ROUTE_STATS_PREFIX']}{origin_id}:{destination_id}"

    # ---------------------- Operations ----------------------

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or backend failure."""
        try:
            value = self._backend.get(key, _MISS)
        except Exception:
            logger.exception("Cache GET failed for key %s", key)
            return None
        if value is _MISS:
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: int = MEDIUM) -> bool:
        try:
            self._backend.set(key, value, timeout=ttl_seconds)
            return True
        except Exception:
            logger.exception("Cache SET failed for key %s", key)
            return False

    def delete(self, key: str) -> bool:
        try:
            self._backend.delete(key)
            return True
        except Exception:
            logger.exception("Cache DELETE failed for key %s", key)
            return False

    def is_ready(self) -> bool:
        """Round-trip a sentinel key; used by the health check."""
        sentinel = "healthcheck:sentinel"
        try:
            self._backend.set(sentinel, "ok", timeout=5)
            return self._backend.get(sentinel) == "ok"
        except Exception:
            return False


# ---------------------- Singleton Instance ----------------------

_match_cache: Optional[MatchCache] = None


def get_match_cache() -> MatchCache:
    """Get the process-wide MatchCache bound to the default cache."""
    global _match_cache
    if _match_cache is None:
        _match_cache = MatchCache()
    return _match_cache
