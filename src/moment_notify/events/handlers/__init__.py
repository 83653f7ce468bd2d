"""Event subscribers.

Each subscriber catches and logs its own failures; a failing subscriber never
affects the publisher or its siblings.
"""

from .event_store import EventStoreWriter
from .notifications import NotificationWriter
from .push import PushNotificationHandler
from .websocket import WebSocketEventHandler

__all__ = [
    "EventStoreWriter",
    "NotificationWriter",
    "PushNotificationHandler",
    "WebSocketEventHandler",
]
