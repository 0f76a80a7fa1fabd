"""
Trip/package matching service.

This module handles:
    - Read-through caching with TTL tiers
    - Exact-route and nearby (both endpoints within radius) candidate search
    - Merging and de-duplicating the two passes
"""

from .cache import MatchCache, get_match_cache, MATCH_CACHE_CONFIG
from .nearby import NearbyCandidate, find_nearby_packages, find_nearby_trips
from .match_finder import (
    MatchCandidate,
    MatchFinder,
    find_matching_packages,
    find_matching_trips,
    merge_candidates,
)

__all__ = [
    "MatchCache",
    "get_match_cache",
    "MATCH_CACHE_CONFIG",
    "NearbyCandidate",
    "find_nearby_packages",
    "find_nearby_trips",
    "MatchCandidate",
    "MatchFinder",
    "find_matching_packages",
    "find_matching_trips",
    "merge_candidates",
]
