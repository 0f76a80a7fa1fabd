"""
Match request lifecycle operations.

    pending --accept--> accepted --pay--> paid --pickup--> confirmed
       |
       +--decline--> declined
       +--24h------> expired

Every write locks the row (select_for_update) and applies the change with
a conditional UPDATE on the expected status and version, so two racing
writers can never both win. Expiry is applied lazily whenever a request is
read or written, and by a periodic sweep.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from common.exceptions import DomainValidationError, InvalidTransitionError, NotParticipantError
from matches.models import Match, MatchRequest
from realtime.notifications import notify_match_request_event
from .codes import generate_code_pair
from .exceptions import (
    ConcurrentUpdateError,
    InsufficientSpaceError,
    MatchRequestExpiredError,
    MatchRequestNotFoundError,
    OpenMatchRequestExistsError,
)

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Result object for payment operations."""
    match_request: MatchRequest
    match: Match
    created: bool = True
    message: str = ""


def request_ttl() -> timedelta:
    return timedelta(hours=settings.AIRBAR.get("MATCH_REQUEST_TTL_HOURS", 24))


# ===================== Internal helpers =====================

def _cas_update(match_request: MatchRequest, expected_status: str, **fields) -> MatchRequest:
    """
    Compare-and-swap: apply fields only if status and version are unchanged.

    Raises:
        ConcurrentUpdateError: If another writer got there first
    """
    updated = MatchRequest.objects.filter(
        id=match_request.id,
        status=expected_status,
        version=match_request.version,
    ).update(version=F('version') + 1, updated_at=timezone.now(), **fields)

    if not updated:
        raise ConcurrentUpdateError("Match request was changed by another operation; please retry")

    match_request.refresh_from_db()
    return match_request


def _get_for_update(request_id) -> MatchRequest:
    try:
        return MatchRequest.objects.select_for_update().get(id=request_id)
    except (MatchRequest.DoesNotExist, ValueError, TypeError):
        raise MatchRequestNotFoundError(f"Match request {request_id} not found")


def _require_participant(match_request: MatchRequest, user) -> str:
    role = match_request.role_of(user)
    if role is None:
        raise NotParticipantError("You are not part of this match request")
    return role


def _proposer_id(match_request: MatchRequest) -> int:
    return match_request.sender_id if match_request.proposed_by == 'sender' else match_request.traveler_id


def _counterpart_id(match_request: MatchRequest) -> int:
    return match_request.traveler_id if match_request.proposed_by == 'sender' else match_request.sender_id


def _is_stale(match_request: MatchRequest, now) -> bool:
    return match_request.status == 'pending' and match_request.expires_at <= now


def _trip_is_open(trip, now) -> bool:
    return trip.status == 'ACTIVE' and trip.departure_date >= now


# ===================== Expiry =====================

def expire_match_request(request_id, now=None) -> bool:
    """
    Expire one pending request whose window has passed.

    Safe to call at any time: requests that are not pending or not yet due
    are left untouched. Returns True if this call expired the request.
    """
    now = now or timezone.now()
    with transaction.atomic():
        updated = MatchRequest.objects.filter(
            id=request_id,
            status='pending',
            expires_at__lte=now,
        ).update(status='expired', version=F('version') + 1, updated_at=now)

    if not updated:
        return False

    match_request = MatchRequest.objects.get(id=request_id)
    logger.info("Match request %s expired", request_id)
    notify_match_request_event(
        'match_request_expired',
        match_request,
        [match_request.sender_id, match_request.traveler_id],
        'This match request expired before it was answered.',
    )
    return True


def expire_stale_match_requests(now=None, queryset=None) -> int:
    """
    Sweep: expire every pending request past its expires_at.

    Returns:
        Number of requests expired by this call
    """
    now = now or timezone.now()
    qs = queryset if queryset is not None else MatchRequest.objects.all()
    stale_ids = list(
        qs.filter(status='pending', expires_at__lte=now).values_list('id', flat=True)
    )

    expired = 0
    for request_id in stale_ids:
        if expire_match_request(request_id, now=now):
            expired += 1

    if expired:
        logger.info("Expired %d stale match request(s)", expired)
    return expired


def _expire_if_stale(request_id) -> None:
    # Runs outside the caller's transaction so the expiry sticks even when
    # the caller then rejects the operation.
    expire_match_request(request_id)


def _schedule_expiry(match_request: MatchRequest) -> None:
    from matches.tasks import expire_match_request_task

    try:
        expire_match_request_task.apply_async((match_request.id,), eta=match_request.expires_at)
    except Exception:
        logger.exception("Could not schedule expiry for match request %s", match_request.id)


# ===================== Creation =====================

@transaction.atomic
def create_match_request(
    user,
    trip_id,
    parcel_id,
    reward=None,
    message: str = "",
) -> MatchRequest:
    """
    Propose carrying a package on a trip.

    The proposer is the package's sender or the trip's traveler; the other
    party must answer within 24 hours.

    Raises:
        TripNotFoundError / PackageNotFoundError: Unknown trip or package
        NotParticipantError: User owns neither side
        InvalidTransitionError: Trip or package no longer open
        InsufficientSpaceError: Package heavier than the free space
        OpenMatchRequestExistsError: The pair already has an open request
    """
    from trips.models import Trip
    from trips.services import TripNotFoundError
    from parcels.models import Package
    from parcels.services import PackageNotFoundError

    try:
        trip = Trip.objects.select_for_update().get(id=trip_id)
    except (Trip.DoesNotExist, ValueError, TypeError):
        raise TripNotFoundError(f"Trip {trip_id} not found")
    try:
        package = Package.objects.select_for_update().get(id=parcel_id)
    except (Package.DoesNotExist, ValueError, TypeError):
        raise PackageNotFoundError(f"Package {parcel_id} not found")

    now = timezone.now()

    if trip.traveler_id == package.sender_id:
        raise DomainValidationError("A package cannot be matched with its own sender's trip")
    if user.id == package.sender_id:
        proposed_by = 'sender'
    elif user.id == trip.traveler_id:
        proposed_by = 'traveler'
    else:
        raise NotParticipantError("Only the package's sender or the trip's traveler can propose a match")

    if not _trip_is_open(trip, now):
        raise InvalidTransitionError("This trip is no longer accepting packages")
    if package.status != 'PENDING' or package.expires_at <= now:
        raise InvalidTransitionError("This package is no longer available")
    if package.weight > trip.space_available:
        raise InsufficientSpaceError(
            f"Package weighs {package.weight}kg but the trip only has {trip.space_available}kg free"
        )

    # Clear out a stale pending request on this pair before checking
    expire_stale_match_requests(
        now=now, queryset=MatchRequest.objects.filter(trip=trip, parcel=package)
    )
    if MatchRequest.objects.filter(
        trip=trip, parcel=package, status__in=MatchRequest.OPEN_STATUSES
    ).exists():
        raise OpenMatchRequestExistsError("An open match request already exists for this trip and package")

    try:
        with transaction.atomic():
            match_request = MatchRequest.objects.create(
                trip=trip,
                parcel=package,
                sender_id=package.sender_id,
                traveler_id=trip.traveler_id,
                proposed_by=proposed_by,
                weight=package.weight,
                reward=package.estimated_reward if reward is None else reward,
                category=package.category,
                message=message or None,
                status='pending',
                expires_at=now + request_ttl(),
            )
    except IntegrityError:
        raise OpenMatchRequestExistsError("An open match request already exists for this trip and package")

    logger.info(
        "Match request %s created by %s %s (trip %s, package %s)",
        match_request.id, proposed_by, user.id, trip.id, package.id,
    )
    notify_match_request_event(
        'match_request_created',
        match_request,
        [_counterpart_id(match_request)],
        'You have a new match request.',
    )
    transaction.on_commit(lambda: _schedule_expiry(match_request))
    return match_request


# ===================== Reads =====================

def get_match_request(user, request_id) -> MatchRequest:
    """Fetch a request the user takes part in, expiring it first if due."""
    _expire_if_stale(request_id)
    try:
        match_request = MatchRequest.objects.select_related(
            'trip__origin', 'trip__destination', 'parcel', 'sender', 'traveler'
        ).get(id=request_id)
    except (MatchRequest.DoesNotExist, ValueError, TypeError):
        raise MatchRequestNotFoundError(f"Match request {request_id} not found")

    _require_participant(match_request, user)
    return match_request


def list_user_match_requests(user, role: Optional[str] = None, status: Optional[str] = None) -> List[MatchRequest]:
    """Requests where the user is sender and/or traveler, newest first."""
    if role == 'sender':
        qs = MatchRequest.objects.filter(sender=user)
    elif role == 'traveler':
        qs = MatchRequest.objects.filter(traveler=user)
    else:
        qs = MatchRequest.objects.filter(Q(sender=user) | Q(traveler=user))

    expire_stale_match_requests(queryset=qs)

    if status:
        qs = qs.filter(status=status)
    return list(
        qs.select_related('trip__origin', 'trip__destination', 'parcel', 'sender', 'traveler')
        .order_by('-created_at')
    )


# ===================== Answering =====================

def _answer(user, request_id, new_status: str, timestamp_field: str) -> MatchRequest:
    _expire_if_stale(request_id)

    with transaction.atomic():
        match_request = _get_for_update(request_id)
        role = _require_participant(match_request, user)

        if role != match_request.counterpart_role:
            raise NotParticipantError("Only the other party can answer this match request")
        if match_request.status == 'expired' or _is_stale(match_request, timezone.now()):
            raise MatchRequestExpiredError("This match request has expired")
        if match_request.status != 'pending':
            verb = 'accept' if new_status == 'accepted' else 'decline'
            raise InvalidTransitionError(f"Cannot {verb} - request is {match_request.status}")

        if new_status == 'accepted' and match_request.parcel.status != 'PENDING':
            raise InvalidTransitionError("This package has already been matched")
        if new_status == 'accepted' and not _trip_is_open(match_request.trip, timezone.now()):
            raise InvalidTransitionError("This trip is no longer accepting packages")

        now = timezone.now()
        _cas_update(match_request, 'pending', status=new_status, **{timestamp_field: now})

    logger.info("Match request %s %s by user %s", match_request.id, new_status, user.id)
    notify_match_request_event(
        f'match_request_{new_status}',
        match_request,
        [_proposer_id(match_request)],
        f'Your match request was {new_status}.',
    )
    return match_request


def accept_match_request(user, request_id) -> MatchRequest:
    """
    Accept a pending request (counterpart of the proposer only).

    Raises:
        MatchRequestExpiredError: Request passed its 24 hour window
        InvalidTransitionError: Request is not pending
    """
    return _answer(user, request_id, 'accepted', 'accepted_at')


def decline_match_request(user, request_id) -> MatchRequest:
    """Decline a pending request (counterpart of the proposer only)."""
    return _answer(user, request_id, 'declined', 'declined_at')


# ===================== Payment =====================

@transaction.atomic
def _apply_payment(request_id, payment_reference: Optional[str], payer=None) -> PaymentResult:
    from trips.models import Trip
    from parcels.models import Package

    match_request = _get_for_update(request_id)

    if payer is not None:
        role = _require_participant(match_request, payer)
        if role != 'sender':
            raise NotParticipantError("Only the sender can pay for a match request")

    if match_request.status in ('paid', 'confirmed'):
        # Redelivered webhook or double submit with the same reference
        if payment_reference and payment_reference == match_request.payment_reference:
            return PaymentResult(
                match_request=match_request,
                match=match_request.match,
                created=False,
                message="Payment already recorded",
            )
        raise InvalidTransitionError("This match request has already been paid")

    if match_request.status != 'accepted':
        raise InvalidTransitionError("A match request must be accepted before payment")

    trip = Trip.objects.select_for_update().get(id=match_request.trip_id)
    package = Package.objects.select_for_update().get(id=match_request.parcel_id)

    if not _trip_is_open(trip, timezone.now()):
        raise InvalidTransitionError("This trip is no longer accepting packages")
    if package.status != 'PENDING':
        raise InvalidTransitionError("This package has already been matched")
    if match_request.weight > trip.space_available:
        raise InsufficientSpaceError("The trip no longer has enough space for this package")

    now = timezone.now()
    _cas_update(
        match_request,
        'accepted',
        status='paid',
        payment_status='succeeded',
        escrow_status='held',
        paid_at=now,
        payment_reference=payment_reference or f"pay_{uuid.uuid4().hex[:24]}",
    )

    pickup_code, delivery_code = generate_code_pair()
    try:
        with transaction.atomic():
            match = Match.objects.create(
                match_request=match_request,
                trip=trip,
                parcel=package,
                sender_id=match_request.sender_id,
                traveler_id=match_request.traveler_id,
                status='confirmed',
                pickup_code=pickup_code,
                delivery_code=delivery_code,
                pickup_address=package.pickup_address,
                delivery_address=package.delivery_address,
            )
    except IntegrityError:
        raise ConcurrentUpdateError("A match already exists for this request")

    package.status = 'MATCHED'
    package.save(update_fields=['status', 'updated_at'])
    trip.space_available = trip.space_available - match_request.weight
    trip.save(update_fields=['space_available', 'updated_at'])

    logger.info(
        "Match request %s paid (ref %s); match %s created",
        match_request.id, match_request.payment_reference, match.id,
    )
    notify_match_request_event(
        'match_request_paid',
        match_request,
        [match_request.sender_id, match_request.traveler_id],
        'Payment received and held in escrow. Your match is confirmed.',
    )
    return PaymentResult(match_request=match_request, match=match, created=True, message="Payment succeeded")


def pay_match_request(user, request_id, payment_reference: Optional[str] = None) -> PaymentResult:
    """
    Record a successful payment by the sender.

    Moves accepted -> paid, holds the reward in escrow and creates exactly
    one Match with fresh pickup/delivery codes. Repeating the call with the
    same payment_reference returns the existing pair.

    Raises:
        NotParticipantError: Caller is not the sender
        InvalidTransitionError: Request not accepted, or already paid
    """
    _expire_if_stale(request_id)
    return _apply_payment(request_id, payment_reference, payer=user)


def confirm_payment_from_webhook(request_id, payment_reference: str) -> PaymentResult:
    """Provider-side success notification; same rules as pay, without a caller."""
    _expire_if_stale(request_id)
    return _apply_payment(request_id, payment_reference, payer=None)


@transaction.atomic
def record_payment_failure(request_id, payment_reference: Optional[str] = None) -> MatchRequest:
    """
    Mark a failed charge. The request stays accepted so the sender can retry.
    """
    match_request = _get_for_update(request_id)

    if match_request.status in ('paid', 'confirmed'):
        logger.warning(
            "Ignoring payment failure for already paid match request %s (ref %s)",
            match_request.id, payment_reference,
        )
        return match_request
    if match_request.status != 'accepted':
        raise InvalidTransitionError(f"Cannot record a payment for a {match_request.status} request")

    _cas_update(
        match_request,
        'accepted',
        payment_status='failed',
        payment_reference=payment_reference or match_request.payment_reference,
    )
    notify_match_request_event(
        'payment_failed',
        match_request,
        [match_request.sender_id],
        'Your payment did not go through. Please try again.',
    )
    return match_request


# ===================== Confirmation =====================

def confirm_match_request(match_request: MatchRequest) -> MatchRequest:
    """paid -> confirmed; called when the traveler records pickup."""
    if match_request.status == 'confirmed':
        return match_request
    if match_request.status != 'paid':
        raise InvalidTransitionError(f"Cannot confirm a {match_request.status} request")
    return _cas_update(match_request, 'paid', status='confirmed')


def release_escrow(match_request: MatchRequest) -> MatchRequest:
    """held -> released once the package is delivered."""
    if match_request.escrow_status != 'held':
        raise InvalidTransitionError(f"Escrow is {match_request.escrow_status}, not held")
    return _cas_update(match_request, match_request.status, escrow_status='released')


def settle_escrow(match_request: MatchRequest, outcome: str) -> MatchRequest:
    """Dispute outcome: refund the sender or release to the traveler."""
    if outcome not in ('refunded', 'released'):
        raise DomainValidationError("Escrow outcome must be 'refunded' or 'released'")
    if match_request.escrow_status != 'held':
        raise InvalidTransitionError(f"Escrow is {match_request.escrow_status}, not held")
    return _cas_update(match_request, match_request.status, escrow_status=outcome)
