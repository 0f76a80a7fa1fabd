"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .notification_consumer import NOTIFICATION_EVENTS, NotificationConsumer

__all__ = [
    "BaseConsumer",
    "NotificationConsumer",
    "NOTIFICATION_EVENTS",
]
