"""Per-user notification stream for match requests, matches and disputes."""

import logging
from typing import Any, Dict

from .base import BaseConsumer

logger = logging.getLogger(__name__)

# Event types published by realtime.notifications
NOTIFICATION_EVENTS = (
    "match_request_created",
    "match_request_accepted",
    "match_request_declined",
    "match_request_expired",
    "match_request_paid",
    "payment_failed",
    "match_tracking_updated",
    "escrow_released",
    "dispute_opened",
    "dispute_updated",
    "dispute_resolved",
)


class NotificationConsumer(BaseConsumer):
    """
    Relays every event sent to ``user_<id>`` to the connected client
    unchanged. Clients may send ``ping`` to check the connection.
    """

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "ping":
            await self.send_json({"type": "pong"})
            return
        await super().handle_message(msg_type, data)

    async def forward_event(self, event):
        logger.debug("WS <- user_%s: %s", self.user_id, event.get("type"))
        await self.send_json(dict(event))

    # ---------------------- Match request events ----------------------

    async def match_request_created(self, event):
        """Sent to the counterpart when a request is proposed."""
        await self.forward_event(event)

    async def match_request_accepted(self, event):
        await self.forward_event(event)

    async def match_request_declined(self, event):
        await self.forward_event(event)

    async def match_request_expired(self, event):
        """Sent to both parties when the 24 hour window passes."""
        await self.forward_event(event)

    async def match_request_paid(self, event):
        await self.forward_event(event)

    async def payment_failed(self, event):
        await self.forward_event(event)

    # ---------------------- Match events ----------------------

    async def match_tracking_updated(self, event):
        await self.forward_event(event)

    async def escrow_released(self, event):
        """Sent to the traveler once delivery is confirmed."""
        await self.forward_event(event)

    # ---------------------- Dispute events ----------------------

    async def dispute_opened(self, event):
        await self.forward_event(event)

    async def dispute_updated(self, event):
        await self.forward_event(event)

    async def dispute_resolved(self, event):
        await self.forward_event(event)
