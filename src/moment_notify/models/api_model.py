"""API models for the device and notification endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from moment_notify.models.base_model import DevicePlatform


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, as the mobile client sends them."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class DeviceRegistrationInput(CamelModel):
    push_token: str | None = None
    device_id: str = Field(min_length=1, max_length=255)
    platform: DevicePlatform
    app_version: str = Field(min_length=1, max_length=32)
    expo_version: str | None = Field(default=None, max_length=32)


class DeviceActivityInput(CamelModel):
    push_token: str = Field(min_length=1, max_length=255)


class DeviceResponse(CamelModel):
    id: int
    user_id: str
    push_token: str | None = None
    platform: str
    device_id: str
    app_version: str
    expo_version: str | None = None
    is_active: bool
    token_status: str
    failure_count: int
    last_seen: datetime
    last_token_refresh: datetime
    created_at: datetime


class NotificationResponse(CamelModel):
    id: int
    type: str
    title: str
    body: str
    data: dict[str, Any] = {}
    is_read: bool
    is_delivered: bool
    created_at: datetime
    delivered_at: datetime | None = None
    read_at: datetime | None = None


class NotificationPage(CamelModel):
    items: list[NotificationResponse]
    page: int
    limit: int
    total: int


class UnreadCountResponse(CamelModel):
    count: int
