"""
Dispute workflow service.

This module handles:
    - Opening disputes on matches
    - The append-only, time-ordered dispute timeline
    - Support offers and resolution with escrow settlement
    - First-reply and resolution SLA tracking
"""

from .dispute_workflow import (
    DISPUTE_TRANSITIONS,
    DisputeNotFoundError,
    OpenDisputeExistsError,
    add_dispute_timeline_entry,
    can_transition,
    create_dispute,
    flag_overdue_disputes,
    get_dispute,
    list_user_disputes,
    make_offer,
    resolve_dispute,
)

__all__ = [
    "DISPUTE_TRANSITIONS",
    "DisputeNotFoundError",
    "OpenDisputeExistsError",
    "add_dispute_timeline_entry",
    "can_transition",
    "create_dispute",
    "flag_overdue_disputes",
    "get_dispute",
    "list_user_disputes",
    "make_offer",
    "resolve_dispute",
]
