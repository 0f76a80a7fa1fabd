"""Serialization helpers shared by the trip and package endpoints."""


def serialize_candidates(candidates, entity_serializer_class, entity_key: str) -> list:
    """
    Render MatchCandidate results: the entity under ``entity_key`` plus how
    it matched and its endpoint distances (zero for exact matches).
    """
    return [
        {
            entity_key: entity_serializer_class(candidate.entity).data,
            "match_type": candidate.match_type,
            "origin_distance_km": round(candidate.origin_distance_km, 2),
            "destination_distance_km": round(candidate.destination_distance_km, 2),
        }
        for candidate in candidates
    ]
