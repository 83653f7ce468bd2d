from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from moment_notify.models.base_model import DeviceBase, NotificationBase, PushTicketStatus, ScheduledEventStatus
from moment_notify.utils.clock import utc_now


class Device(DeviceBase, table=True):
    """Device model, one row per (user, physical device)."""

    __tablename__ = "user_devices"
    __table_args__ = (UniqueConstraint("user_id", "device_id", name="uq_user_devices_user_device"),)

    id: int | None = Field(default=None, primary_key=True)
    last_seen: datetime = Field(default_factory=utc_now)
    last_token_refresh: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Notification(NotificationBase, table=True):
    """Notification model."""

    __tablename__ = "notifications"

    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)


class ScheduledEvent(SQLModel, table=True):
    """A serialized event waiting for its fire time."""

    __tablename__ = "scheduled_events"

    id: str = Field(primary_key=True, max_length=36)
    event_data: str = Field(sa_type=Text)
    scheduled_for: datetime = Field(index=True)
    status: str = Field(default=ScheduledEventStatus.PENDING, max_length=16, index=True)
    attempts: int = 0
    last_error: str | None = Field(default=None, sa_type=Text)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class EventStoreRecord(SQLModel, table=True):
    """Append-only audit row for a published event."""

    __tablename__ = "event_store"

    id: str = Field(primary_key=True, max_length=36)
    event_type: str = Field(max_length=64, index=True)
    aggregate_id: str = Field(max_length=64, index=True)
    aggregate_type: str = Field(max_length=32)
    version: int = 1
    event_data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    event_metadata: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    timestamp: datetime
    created_at: datetime = Field(default_factory=utc_now, index=True)


class PushTicket(SQLModel, table=True):
    """Push ticket accepted by the provider, awaiting its receipt check."""

    __tablename__ = "push_tickets"

    id: str = Field(primary_key=True, max_length=64)
    push_token: str = Field(max_length=255)
    user_id: str | None = Field(default=None, max_length=64)
    status: str = Field(default=PushTicketStatus.PENDING, max_length=16, index=True)
    error: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utc_now)
    check_after: datetime = Field(index=True)
    checked_at: datetime | None = None
