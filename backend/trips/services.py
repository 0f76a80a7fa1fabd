"""
Trip listing operations: create, search, detail, update, cancel, complete.

Trips are never deleted. A listing leaves the marketplace by moving to
CANCELLED or COMPLETED.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.exceptions import InvalidTransitionError, NotFoundError, NotParticipantError, DomainValidationError
from locations.services import get_location_index
from .models import Trip

logger = logging.getLogger(__name__)


class TripNotFoundError(NotFoundError):
    """Raised when a trip cannot be found."""
    error_code = "trip_not_found"


@dataclass
class TripSearchResult:
    trips: List[Trip] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def _trip_queryset():
    return Trip.objects.select_related('traveler', 'origin', 'destination')


@transaction.atomic
def create_trip(traveler, origin_id, destination_id, **data) -> Trip:
    """
    Create an ACTIVE trip for the traveler.

    Raises:
        LocationNotFoundError: If either endpoint does not exist
        NotParticipantError: If the user's role cannot travel
    """
    if not traveler.can_travel:
        raise NotParticipantError("Only travelers can list trips")

    origin, destination = get_location_index().find_exact(origin_id, destination_id)

    trip = Trip.objects.create(
        traveler=traveler,
        origin=origin,
        destination=destination,
        status='ACTIVE',
        views=0,
        **data,
    )
    logger.info("Trip %s created by user %s (%s -> %s)", trip.id, traveler.id, origin.id, destination.id)
    return trip


def search_trips(
    origin_id=None,
    destination_id=None,
    departure_from=None,
    departure_to=None,
    min_space=None,
    max_price_per_kg=None,
    bag_types: Optional[List[str]] = None,
    status: str = 'ACTIVE',
    limit: int = 20,
    offset: int = 0,
) -> TripSearchResult:
    """Public trips matching the filters, newest first."""
    qs = _trip_queryset().filter(status=status, is_public=True)

    if origin_id:
        qs = qs.filter(origin_id=origin_id)
    if destination_id:
        qs = qs.filter(destination_id=destination_id)
    if departure_from:
        qs = qs.filter(departure_date__gte=departure_from)
    if departure_to:
        qs = qs.filter(departure_date__lte=departure_to)
    if min_space:
        qs = qs.filter(space_available__gte=min_space)
    if max_price_per_kg:
        qs = qs.filter(price_per_kg__lte=max_price_per_kg)

    qs = qs.order_by('-created_at')

    if bag_types:
        # JSON containment is not portable across backends
        wanted = set(bag_types)
        matching = [trip for trip in qs if wanted.issubset(trip.bag_types or [])]
        total = len(matching)
        page = matching[offset:offset + limit]
    else:
        total = qs.count()
        page = list(qs[offset:offset + limit])

    return TripSearchResult(trips=page, total=total, has_more=offset + limit < total)


def get_trip(trip_id, count_view: bool = False) -> Trip:
    """
    Fetch a trip with its route. Detail reads pass count_view=True to bump
    the views counter.
    """
    try:
        trip = _trip_queryset().get(id=trip_id)
    except (Trip.DoesNotExist, ValueError, TypeError):
        raise TripNotFoundError(f"Trip {trip_id} not found")

    if count_view:
        Trip.objects.filter(id=trip.id).update(views=F('views') + 1)
        trip.refresh_from_db(fields=['views'])
    return trip


def get_user_trips(user, status: Optional[str] = None) -> List[Trip]:
    qs = _trip_queryset().filter(traveler=user)
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by('departure_date'))


def _get_owned_trip_for_update(user, trip_id) -> Trip:
    try:
        trip = Trip.objects.select_for_update().get(id=trip_id)
    except (Trip.DoesNotExist, ValueError, TypeError):
        raise TripNotFoundError(f"Trip {trip_id} not found")
    if trip.traveler_id != user.id:
        raise NotParticipantError("Only the trip's traveler can change it")
    return trip


@transaction.atomic
def update_trip(user, trip_id, **changes) -> Trip:
    trip = _get_owned_trip_for_update(user, trip_id)
    if trip.status != 'ACTIVE':
        raise InvalidTransitionError(f"Cannot update a {trip.status.lower()} trip")

    arrival = changes.get('arrival_date')
    if arrival and arrival < trip.departure_date:
        raise DomainValidationError("Arrival date must be after departure date")

    for name, value in changes.items():
        setattr(trip, name, value)
    trip.save(update_fields=list(changes) + ['updated_at'])
    return trip


@transaction.atomic
def cancel_trip(user, trip_id) -> Trip:
    trip = _get_owned_trip_for_update(user, trip_id)
    if trip.status != 'ACTIVE':
        raise InvalidTransitionError(f"Cannot cancel - trip is already {trip.status.lower()}")

    trip.status = 'CANCELLED'
    trip.save(update_fields=['status', 'updated_at'])
    logger.info("Trip %s cancelled by traveler %s", trip.id, user.id)
    return trip


@transaction.atomic
def complete_trip(user, trip_id) -> Trip:
    trip = _get_owned_trip_for_update(user, trip_id)
    if trip.status != 'ACTIVE':
        raise InvalidTransitionError(f"Cannot complete - trip is {trip.status.lower()}")

    trip.status = 'COMPLETED'
    trip.save(update_fields=['status', 'updated_at'])
    logger.info("Trip %s completed at %s", trip.id, timezone.now().isoformat())
    return trip
