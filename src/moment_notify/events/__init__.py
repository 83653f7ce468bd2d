"""Domain events of the notification core.

The envelope and enums live in ``types``; building events is the job of
``publisher.EventPublisher`` and wiring the subscribers that of
``system.EventSystem``.
"""

from moment_notify.events.types import AggregateType, Event, EventMetadata, EventPriority, EventType

__all__ = [
    "AggregateType",
    "Event",
    "EventMetadata",
    "EventPriority",
    "EventType",
]
