from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Text
from sqlmodel import Field, SQLModel


class TokenStatus(StrEnum):
    """Health of a device's push token."""

    ACTIVE = "active"
    SUSPECTED_INVALID = "suspected_invalid"
    CONFIRMED_INVALID = "confirmed_invalid"
    # Reserved, no transition leads here yet
    TEMPORARILY_DISABLED = "temporarily_disabled"


class DevicePlatform(StrEnum):
    IOS = "ios"
    ANDROID = "android"


class ScheduledEventStatus(StrEnum):
    PENDING = "pending"
    FIRED = "fired"
    FAILED = "failed"


class PushTicketStatus(StrEnum):
    """Outcome of a receipt check for an accepted push ticket."""

    PENDING = "pending"
    OK = "ok"
    INVALID = "invalid"
    ERROR = "error"


class DeviceBase(SQLModel):
    """Base model for a registered device."""

    user_id: str = Field(index=True, max_length=64)
    push_token: str | None = Field(default=None, index=True, max_length=255)
    platform: str = Field(max_length=16)
    device_id: str = Field(max_length=255)
    app_version: str = Field(max_length=32)
    expo_version: str | None = Field(default=None, max_length=32)
    is_active: bool = True
    token_status: str = Field(default=TokenStatus.ACTIVE, max_length=32, index=True)
    failure_count: int = 0


class NotificationBase(SQLModel):
    """Base model for an in-app notification."""

    user_id: str = Field(index=True, max_length=64)
    type: str = Field(max_length=64)
    title: str = Field(max_length=255)
    body: str = Field(sa_type=Text)
    data: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    is_read: bool = False
    is_delivered: bool = False
    delivered_at: datetime | None = None
    read_at: datetime | None = None
