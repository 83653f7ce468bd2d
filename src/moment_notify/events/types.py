"""Event type definitions for the notification core.

This module contains the typed envelope shared by every component: the
publisher builds it, the bus routes it, and every subscriber reads it.
Events are immutable records of something that happened; the ``payload``
shape depends on ``type`` and handlers must tolerate missing optional keys.

The wire form (scheduled event rows, broker messages, event store rows) uses
camelCase keys, e.g. ``aggregateId`` and ``metadata.userId``.
"""

from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from moment_notify.utils.clock import to_naive_utc, utc_now


class EventType(StrEnum):
    """Domain event kinds, routed by their dotted name."""

    # User events
    USER_REGISTERED = "user.registered"
    USER_VERIFIED = "user.verified"
    USER_PROFILE_UPDATED = "user.profile.updated"

    # Moment events
    MOMENT_CREATED = "moment.created"
    MOMENT_UPDATED = "moment.updated"
    MOMENT_DELETED = "moment.deleted"
    MOMENT_SHARED = "moment.shared"

    # Moment request events
    MOMENT_REQUEST_CREATED = "moment.request.created"
    MOMENT_REQUEST_APPROVED = "moment.request.approved"
    MOMENT_REQUEST_REJECTED = "moment.request.rejected"
    MOMENT_REQUEST_CANCELED = "moment.request.canceled"

    # Contact events
    CONTACT_ADDED = "contact.added"
    CONTACT_REGISTERED = "contact.registered"

    # Reminder events
    MOMENT_REMINDER_DUE = "moment.reminder.due"


class AggregateType(StrEnum):
    """The domain entity an event is about."""

    USER = "user"
    MOMENT = "moment"
    CONTACT = "contact"
    MOMENT_REQUEST = "moment_request"


class EventPriority(IntEnum):
    """Delivery priority hint carried in the metadata."""

    LOW = 1
    NORMAL = 5
    HIGH = 8
    CRITICAL = 10


class EventMetadata(BaseModel):
    """Envelope metadata.

    ``user_id`` is the recipient of the notification (the default fan-out
    target), not necessarily the actor.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source: str
    correlation_id: str | None = None
    causation_id: str | None = None
    user_id: str | None = None
    retry_count: int = 0
    priority: EventPriority = EventPriority.NORMAL


class Event(BaseModel):
    """Immutable record of a domain occurrence."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: EventType
    aggregate_id: str
    aggregate_type: AggregateType
    version: int = 1
    timestamp: datetime = Field(default_factory=utc_now)
    payload: dict[str, Any] = Field(default_factory=dict)
    metadata: EventMetadata

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store timestamps as naive UTC."""
        return to_naive_utc(v)

    @field_validator("aggregate_id", mode="before")
    @classmethod
    def stringify_aggregate_id(cls, v: Any) -> str:
        """Numeric ids from the data layer are carried as strings."""
        return str(v)

    def to_json(self) -> str:
        """Serialize to the camelCase wire form."""
        return self.model_dump_json(by_alias=True)

    def to_wire_dict(self) -> dict[str, Any]:
        """JSON-compatible dict in the camelCase wire form."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "Event":
        """Rebuild an event from its wire form."""
        return cls.model_validate_json(data)

    def __str__(self) -> str:
        return f"Event({self.type.value}, id={self.id[:8]}, aggregate={self.aggregate_type.value}:{self.aggregate_id})"
