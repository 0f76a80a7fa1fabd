"""
Match lifecycle: hand-off tracking and issue reporting.

Tracking only moves forward, one step at a time:

    (none) -> picked_up -> in_transit -> delivered

Pickup needs the pickup code from the sender, delivery needs the delivery
code from the receiver (or the sender confirming receipt). A disputed or
delivered match accepts no further tracking updates.
"""

import logging
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from common.exceptions import DomainValidationError, InvalidTransitionError, NotParticipantError
from matches.models import Match, MatchRequest
from realtime.notifications import notify_match_event
from .codes import codes_match
from .exceptions import ConcurrentUpdateError, InvalidHandoffCodeError, MatchNotFoundError
from .match_request_lifecycle import confirm_match_request, release_escrow

logger = logging.getLogger(__name__)

LOCKED_STATUSES = ('disputed', 'delivered')

# tracking_step -> (match status, timestamp field)
STEP_EFFECTS = {
    'picked_up': ('in_transit', 'picked_up_at'),
    'in_transit': ('in_transit', 'in_transit_at'),
    'delivered': ('delivered', 'delivered_at'),
}


def _get_for_update(match_id) -> Match:
    try:
        return Match.objects.select_for_update().get(id=match_id)
    except (Match.DoesNotExist, ValueError, TypeError):
        raise MatchNotFoundError(f"Match {match_id} not found")


def _check_actor(match: Match, role: str, step: str, code) -> None:
    if step == 'picked_up':
        if role != 'traveler':
            raise NotParticipantError("Only the traveler can record pickup")
        if not codes_match(match.pickup_code, code):
            raise InvalidHandoffCodeError("Pickup code does not match")
    elif step == 'in_transit':
        if role != 'traveler':
            raise NotParticipantError("Only the traveler can mark the package in transit")
    elif step == 'delivered':
        # The sender confirming receipt needs no code
        if role == 'traveler' and not codes_match(match.delivery_code, code):
            raise InvalidHandoffCodeError("Delivery code does not match")


@transaction.atomic
def update_match_tracking(user, match_id, tracking_step: str, data: Optional[Dict[str, Any]] = None) -> Match:
    """
    Advance a match's tracking by exactly one step.

    Args:
        user: Sender or traveler on the match
        match_id: Match to update
        tracking_step: picked_up | in_transit | delivered
        data: Optional ``code``, ``notes`` and ``photos`` (list of URLs)

    Raises:
        MatchNotFoundError: Unknown match
        NotParticipantError: Wrong party for this step
        InvalidHandoffCodeError: Pickup/delivery code mismatch
        InvalidTransitionError: Regression, skipped step, repeat, or the
            match is disputed/delivered
    """
    data = data or {}
    match = _get_for_update(match_id)

    role = match.role_of(user)
    if role is None:
        raise NotParticipantError("You are not part of this match")
    if tracking_step not in Match.TRACKING_STEPS:
        raise DomainValidationError(f"Unknown tracking step '{tracking_step}'")
    if match.status in LOCKED_STATUSES:
        raise InvalidTransitionError(f"Tracking is closed - match is {match.status}")

    target = Match.TRACKING_STEPS.index(tracking_step)
    if target != match.tracking_index + 1:
        current = match.tracking_step or 'not picked up'
        raise InvalidTransitionError(f"Cannot move tracking from {current} to {tracking_step}")

    _check_actor(match, role, tracking_step, data.get('code'))

    now = timezone.now()
    new_status, timestamp_field = STEP_EFFECTS[tracking_step]

    fields = {
        'tracking_step': tracking_step,
        'status': new_status,
        timestamp_field: now,
        'updated_at': now,
    }
    notes = (data.get('notes') or '').strip()
    if notes:
        fields['notes'] = f"{match.notes}\n{notes}".strip()
    photos = data.get('photos') or []
    if photos:
        fields['photos'] = list(match.photos or []) + list(photos)

    # Guard on the step we read so a concurrent update cannot be skipped over
    updated = Match.objects.filter(
        id=match.id,
        tracking_step=match.tracking_step,
        status=match.status,
    ).update(**fields)
    if not updated:
        raise ConcurrentUpdateError("Match was changed by another operation; please retry")
    match.refresh_from_db()

    match_request = MatchRequest.objects.select_for_update().get(id=match.match_request_id)
    if tracking_step == 'picked_up':
        confirm_match_request(match_request)
    elif tracking_step == 'delivered':
        release_escrow(match_request)
        get_user_model().objects.filter(id=match.traveler_id).update(
            completed_deliveries=F('completed_deliveries') + 1
        )

    logger.info("Match %s tracking -> %s by %s %s", match.id, tracking_step, role, user.id)

    other_party = match.sender_id if role == 'traveler' else match.traveler_id
    notify_match_event('match_tracking_updated', match, [other_party], f"Package {tracking_step.replace('_', ' ')}.")
    if tracking_step == 'delivered':
        notify_match_event(
            'escrow_released',
            match,
            [match.traveler_id],
            'Delivery confirmed. Your reward has been released.',
        )
    return match


def report_issue(
    user,
    match_id,
    reason: str,
    description: str,
    preferred_outcome: str = 'refund',
    evidence: Optional[List[str]] = None,
):
    """
    Flag a problem with a delivery: the match becomes disputed and a
    Dispute is opened. Earlier tracking data is left as it was.
    """
    from services.disputes import create_dispute

    return create_dispute(user, match_id, reason, description, preferred_outcome, evidence)


def get_match(user, match_id) -> Match:
    try:
        match = Match.objects.select_related(
            'match_request', 'trip__origin', 'trip__destination', 'parcel', 'sender', 'traveler'
        ).get(id=match_id)
    except (Match.DoesNotExist, ValueError, TypeError):
        raise MatchNotFoundError(f"Match {match_id} not found")
    if match.role_of(user) is None:
        raise NotParticipantError("You are not part of this match")
    return match


def list_user_matches(user, status: Optional[str] = None) -> List[Match]:
    qs = Match.objects.filter(Q(sender=user) | Q(traveler=user))
    if status:
        qs = qs.filter(status=status)
    return list(
        qs.select_related('match_request', 'trip__origin', 'trip__destination', 'parcel', 'sender', 'traveler')
        .order_by('-created_at')
    )
