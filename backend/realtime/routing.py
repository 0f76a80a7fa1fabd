"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers import NotificationConsumer

websocket_urlpatterns = [
    # Personal event stream for senders and travelers
    # URL: ws://localhost:8000/ws/notifications/?token=<access token>
    re_path(
        r"ws/notifications/$",
        NotificationConsumer.as_asgi(),
        name="notifications-ws"
    ),
]
