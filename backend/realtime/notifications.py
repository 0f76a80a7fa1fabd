"""
Notification helpers for sending real-time events to connected clients.

Every user has a personal channel-layer group ``user_<id>``. Events are
fire-and-forget: a missing or failing channel layer is logged and never
fails the operation that triggered the event.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_group(user_id: int) -> str:
    return f"user_{user_id}"


def notify_user_event(
    user_id: int | None,
    event_type: str,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to one user's group: user_<user_id>

    Args:
        user_id: Target user's ID
        event_type: Handler name on the client consumer (match_request_created, escrow_released, ...)
        message: Optional human readable message
        extra: Additional payload data

    Returns:
        True if sent successfully, False otherwise
    """
    if not user_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    payload = {
        "type": event_type,
        **(extra or {}),
    }
    if message:
        payload["message"] = message

    try:
        logger.debug("WS -> user_%s: %s", user_id, payload)
        async_to_sync(channel_layer.group_send)(user_group(user_id), payload)
    except Exception:
        logger.exception("Failed to deliver %s to user %s", event_type, user_id)
        return False
    return True


def notify_users(user_ids: Iterable[int], event_type: str, message: str = "", extra: Dict[str, Any] = None) -> int:
    """Send the same event to several users. Returns how many were delivered."""
    return sum(1 for uid in user_ids if notify_user_event(uid, event_type, message, extra))


# ---------------------- Domain Event Helpers ----------------------

def match_request_payload(match_request) -> Dict[str, Any]:
    return {
        "match_request_id": match_request.id,
        "trip_id": match_request.trip_id,
        "parcel_id": match_request.parcel_id,
        "status": match_request.status,
        "payment_status": match_request.payment_status,
        "escrow_status": match_request.escrow_status,
    }


def match_payload(match) -> Dict[str, Any]:
    return {
        "match_id": match.id,
        "match_request_id": match.match_request_id,
        "status": match.status,
        "tracking_step": match.tracking_step,
    }


def notify_match_request_event(event_type: str, match_request, recipients: Iterable[int], message: str = "") -> int:
    return notify_users(recipients, event_type, message, match_request_payload(match_request))


def notify_match_event(event_type: str, match, recipients: Iterable[int], message: str = "") -> int:
    return notify_users(recipients, event_type, message, match_payload(match))


def notify_dispute_event(event_type: str, dispute, message: str = "") -> int:
    extra = {
        "dispute_id": dispute.id,
        "match_id": dispute.match_id,
        "status": dispute.status,
    }
    return notify_users([dispute.sender_id, dispute.traveler_id], event_type, message, extra)
