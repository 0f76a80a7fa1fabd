"""
Dispute workflow: opening, timeline, support offers, resolution and SLAs.

Allowed status transitions:

    open      -> waiting | review | escalated
    waiting   -> review | offer | escalated
    review    -> waiting | offer | resolved | escalated
    offer     -> resolved | escalated | review
    escalated -> review | resolved | closed
    resolved  -> closed

The timeline is append-only. Each entry gets the next per-dispute sequence
number and a timestamp strictly later than the previous entry's.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from common.exceptions import DomainValidationError, InvalidTransitionError, NotFoundError, NotParticipantError
from disputes.models import Dispute, DisputeTimelineEntry
from realtime.notifications import notify_dispute_event

logger = logging.getLogger(__name__)

DISPUTE_TRANSITIONS = {
    'open': {'waiting', 'review', 'escalated'},
    'waiting': {'review', 'offer', 'escalated'},
    'review': {'waiting', 'offer', 'resolved', 'escalated'},
    'offer': {'resolved', 'escalated', 'review'},
    'escalated': {'review', 'resolved', 'closed'},
    'resolved': {'closed'},
    'closed': set(),
}

# Statuses a sender or traveler may move a dispute to on their own
PARTICIPANT_TARGETS = {'escalated'}

ESCROW_OUTCOMES = ('refunded', 'released')
TICK = timedelta(microseconds=1)


class DisputeNotFoundError(NotFoundError):
    """Raised when a dispute cannot be found."""
    error_code = "dispute_not_found"


class OpenDisputeExistsError(InvalidTransitionError):
    """Raised when a match already has an active dispute."""
    error_code = "open_dispute_exists"


def first_reply_window() -> timedelta:
    return timedelta(hours=settings.AIRBAR.get("DISPUTE_FIRST_REPLY_HOURS", 24))


def resolution_window() -> timedelta:
    return timedelta(days=settings.AIRBAR.get("DISPUTE_RESOLUTION_DAYS", 5))


def can_transition(current: str, target: str) -> bool:
    return target in DISPUTE_TRANSITIONS.get(current, set())


# ===================== Internal helpers =====================

def _get_for_update(dispute_id) -> Dispute:
    try:
        return Dispute.objects.select_for_update().get(id=dispute_id)
    except (Dispute.DoesNotExist, ValueError, TypeError):
        raise DisputeNotFoundError(f"Dispute {dispute_id} not found")


def _role_of(dispute: Dispute, user) -> Optional[str]:
    if user is None:
        return 'system'
    if user.id == dispute.sender_id:
        return 'sender'
    if user.id == dispute.traveler_id:
        return 'traveler'
    if user.is_staff:
        return 'support'
    return None


def _append(
    dispute: Dispute,
    actor,
    actor_role: str,
    entry_type: str,
    message: str = "",
    payload: Optional[Dict[str, Any]] = None,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    now=None,
) -> DisputeTimelineEntry:
    """Append one entry. The caller holds the dispute row lock."""
    now = now or timezone.now()
    last = dispute.timeline.order_by('-sequence').first()

    if last is None:
        sequence, timestamp = 1, now
    else:
        sequence = last.sequence + 1
        timestamp = now if now > last.timestamp else last.timestamp + TICK

    return DisputeTimelineEntry.objects.create(
        dispute=dispute,
        sequence=sequence,
        timestamp=timestamp,
        actor=actor,
        actor_role=actor_role,
        type=entry_type,
        message=message or "",
        payload=payload,
        from_status=from_status,
        to_status=to_status,
    )


def _apply_status(dispute: Dispute, target: str, now) -> str:
    current = dispute.status
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move a dispute from {current} to {target}")

    updated = Dispute.objects.filter(id=dispute.id, status=current).update(
        status=target,
        resolved_at=now if target == 'resolved' else dispute.resolved_at,
        updated_at=now,
    )
    if not updated:
        raise InvalidTransitionError("Dispute was changed by another operation; please retry")

    dispute.status = target
    if target == 'resolved':
        dispute.resolved_at = now
    return current


# ===================== Operations =====================

@transaction.atomic
def create_dispute(
    user,
    match_id,
    reason: str,
    description: str,
    preferred_outcome: str = 'refund',
    evidence: Optional[List[str]] = None,
) -> Dispute:
    """
    Open a dispute on a match and mark the match disputed.

    Raises:
        MatchNotFoundError: Unknown match
        NotParticipantError: User is neither sender nor traveler
        OpenDisputeExistsError: The match already has an active dispute
        InvalidTransitionError: The match is already delivered
    """
    from matches.models import Match
    from services.match_management.exceptions import MatchNotFoundError

    try:
        match = Match.objects.select_for_update().get(id=match_id)
    except (Match.DoesNotExist, ValueError, TypeError):
        raise MatchNotFoundError(f"Match {match_id} not found")

    role = match.role_of(user)
    if role is None:
        raise NotParticipantError("Only the sender or traveler can report an issue")

    if reason not in dict(Dispute.REASON_CHOICES):
        raise DomainValidationError(f"Unknown dispute reason '{reason}'")
    if preferred_outcome not in dict(Dispute.OUTCOME_CHOICES):
        raise DomainValidationError(f"Unknown preferred outcome '{preferred_outcome}'")
    if not description or not description.strip():
        raise DomainValidationError("Please describe the issue")

    if Dispute.objects.filter(match=match, status__in=Dispute.ACTIVE_STATUSES).exists():
        raise OpenDisputeExistsError("This match already has an open dispute")
    if match.status not in ('confirmed', 'in_transit'):
        raise InvalidTransitionError(f"Cannot report an issue on a {match.status} match")

    now = timezone.now()
    dispute = Dispute.objects.create(
        match=match,
        sender_id=match.sender_id,
        traveler_id=match.traveler_id,
        opened_by=user,
        status='open',
        reason=reason,
        description=description,
        preferred_outcome=preferred_outcome,
        evidence=list(evidence or []),
        first_reply_due=now + first_reply_window(),
        resolution_due=now + resolution_window(),
    )
    _append(
        dispute, user, role, 'opened', description,
        payload={'reason': reason, 'preferred_outcome': preferred_outcome, 'evidence': dispute.evidence},
        to_status='open', now=now,
    )

    # Tracking fields stay as they were; only the match status changes
    Match.objects.filter(id=match.id).update(status='disputed', updated_at=now)

    logger.info("Dispute %s opened on match %s by %s %s", dispute.id, match.id, role, user.id)
    notify_dispute_event('dispute_opened', dispute, 'A dispute was opened on your delivery.')
    return dispute


@transaction.atomic
def add_dispute_timeline_entry(
    dispute_id,
    actor,
    message: str = "",
    entry_type: str = 'comment',
    payload: Optional[Dict[str, Any]] = None,
    status: Optional[str] = None,
    actor_role: Optional[str] = None,
) -> DisputeTimelineEntry:
    """
    Append a comment, evidence or status change to a dispute.

    With ``status`` the entry is a transition and is validated against
    DISPUTE_TRANSITIONS. Senders and travelers may only escalate; support
    staff may make any allowed transition. A first support entry records
    first_replied_at.

    Raises:
        DisputeNotFoundError: Unknown dispute
        NotParticipantError: Actor may not write to this dispute
        InvalidTransitionError: Status change not allowed, or dispute closed
    """
    dispute = _get_for_update(dispute_id)

    role = _role_of(dispute, actor)
    if role is None:
        raise NotParticipantError("You are not part of this dispute")
    if actor_role and actor_role != role:
        raise NotParticipantError(f"Cannot write as {actor_role}")
    if dispute.status == 'closed':
        raise InvalidTransitionError("This dispute is closed")
    if entry_type not in dict(DisputeTimelineEntry.TYPE_CHOICES) or entry_type in ('opened', 'sla_breach'):
        raise DomainValidationError(f"Unsupported entry type '{entry_type}'")

    now = timezone.now()
    from_status = to_status = None

    if status:
        if role in ('sender', 'traveler') and status not in PARTICIPANT_TARGETS:
            raise NotParticipantError("Only support can move a dispute to that status")
        from_status = _apply_status(dispute, status, now)
        to_status = status
        if entry_type == 'comment':
            entry_type = 'status_change'
    elif entry_type in ('status_change', 'offer'):
        raise DomainValidationError(f"A {entry_type} entry needs a status")

    if entry_type == 'evidence' and payload and payload.get('urls'):
        dispute.evidence = list(dispute.evidence or []) + list(payload['urls'])
        Dispute.objects.filter(id=dispute.id).update(evidence=dispute.evidence)

    if role == 'support' and dispute.first_replied_at is None:
        dispute.first_replied_at = now
        Dispute.objects.filter(id=dispute.id).update(first_replied_at=now)

    entry = _append(
        dispute, actor, role, entry_type, message,
        payload=payload, from_status=from_status, to_status=to_status, now=now,
    )

    if to_status:
        logger.info("Dispute %s moved %s -> %s by %s", dispute.id, from_status, to_status, role)
        notify_dispute_event('dispute_updated', dispute, message)
    return entry


def make_offer(dispute_id, actor, message: str, offer: Dict[str, Any]) -> DisputeTimelineEntry:
    """Support proposes a settlement (moves the dispute to ``offer``)."""
    if actor is None or not actor.is_staff:
        raise NotParticipantError("Only support can make an offer")
    if not offer:
        raise DomainValidationError("An offer needs details")
    return add_dispute_timeline_entry(
        dispute_id, actor, message, entry_type='offer', payload=offer, status='offer'
    )


@transaction.atomic
def resolve_dispute(dispute_id, actor, escrow_outcome: str, message: str = "") -> Dispute:
    """
    Resolve a dispute and settle the held escrow.

    escrow_outcome: 'refunded' returns the reward to the sender,
    'released' pays the traveler.
    """
    from matches.models import MatchRequest
    from services.match_management.match_request_lifecycle import settle_escrow

    if actor is None or not actor.is_staff:
        raise NotParticipantError("Only support can resolve a dispute")
    if escrow_outcome not in ESCROW_OUTCOMES:
        raise DomainValidationError("Escrow outcome must be 'refunded' or 'released'")

    add_dispute_timeline_entry(
        dispute_id, actor, message or f"Resolved: escrow {escrow_outcome}",
        payload={'escrow_outcome': escrow_outcome}, status='resolved',
    )

    dispute = Dispute.objects.select_related('match').get(id=dispute_id)
    match_request = MatchRequest.objects.select_for_update().get(id=dispute.match.match_request_id)
    if match_request.escrow_status == 'held':
        settle_escrow(match_request, escrow_outcome)
    else:
        logger.warning(
            "Dispute %s resolved but escrow for match request %s is %s",
            dispute.id, match_request.id, match_request.escrow_status,
        )

    dispute.escrow_outcome = escrow_outcome
    dispute.save(update_fields=['escrow_outcome', 'updated_at'])
    notify_dispute_event('dispute_resolved', dispute, message)
    return dispute


# ===================== SLA =====================

def flag_overdue_disputes(now=None) -> int:
    """
    Flag first-reply and resolution SLA breaches, once each.

    Returns:
        Number of breach flags set by this call
    """
    now = now or timezone.now()
    flagged = 0

    overdue_ids = list(
        Dispute.objects.filter(status__in=Dispute.ACTIVE_STATUSES)
        .filter(
            Q(first_replied_at__isnull=True, first_reply_due__lte=now, first_reply_breached=False)
            | Q(resolution_due__lte=now, resolution_breached=False)
        )
        .values_list('id', flat=True)
    )

    for dispute_id in overdue_ids:
        with transaction.atomic():
            dispute = _get_for_update(dispute_id)
            breaches = []
            if (dispute.first_replied_at is None and dispute.first_reply_due <= now
                    and not dispute.first_reply_breached):
                dispute.first_reply_breached = True
                breaches.append('first_reply')
            if (dispute.is_active and dispute.resolution_due <= now
                    and not dispute.resolution_breached):
                dispute.resolution_breached = True
                breaches.append('resolution')
            if not breaches:
                continue

            dispute.save(update_fields=['first_reply_breached', 'resolution_breached', 'updated_at'])
            for breach in breaches:
                _append(
                    dispute, None, 'system', 'sla_breach',
                    f"{breach.replace('_', ' ').capitalize()} deadline missed",
                    payload={'sla': breach}, now=now,
                )
            flagged += len(breaches)

    if flagged:
        logger.warning("Flagged %d dispute SLA breach(es)", flagged)
    return flagged


# ===================== Reads =====================

def get_dispute(user, dispute_id) -> Dispute:
    try:
        dispute = Dispute.objects.select_related('match').get(id=dispute_id)
    except (Dispute.DoesNotExist, ValueError, TypeError):
        raise DisputeNotFoundError(f"Dispute {dispute_id} not found")
    if _role_of(dispute, user) is None:
        raise NotParticipantError("You are not part of this dispute")
    return dispute


def list_user_disputes(user) -> List[Dispute]:
    if user.is_staff:
        qs = Dispute.objects.all()
    else:
        qs = Dispute.objects.filter(Q(sender=user) | Q(traveler=user))
    return list(qs.select_related('match').order_by('-created_at'))
