"""Per-type notification lookup table.

Every user-facing event type maps to a ``NotificationSpec`` holding the title,
body template, the payload keys copied into the structured data, and the rule
that picks the recipient. Push delivery and the notification writer read the
same table; types absent from it produce no notification.

Templates are ``str.format`` strings over the event payload. A template whose
keys are missing from the payload falls back to ``fallback_body``.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from moment_notify.events.types import Event, EventType

TargetExtractor = Callable[[Event], str | None]


def payload_key(key: str) -> TargetExtractor:
    """Target the user id found under ``key`` in the payload."""

    def extract(event: Event) -> str | None:
        value = event.payload.get(key)
        return str(value) if value not in (None, "") else None

    return extract


def other_user_or_recipient(event: Event) -> str | None:
    """The other party of a meeting if there is one, else the metadata recipient."""
    value = event.payload.get("otherUserId") or event.metadata.user_id
    return str(value) if value else None


def request_actions(event: Event) -> dict[str, Any]:
    request_id = event.payload.get("momentRequestId")
    return {
        "categoryId": "MOMENT_REQUEST",
        "actions": [
            {"action": "accept", "title": "Accept", "requestId": request_id},
            {"action": "reject", "title": "Reject", "requestId": request_id},
        ],
    }


@dataclass(frozen=True)
class RenderedNotification:
    """Title, body and data of one notification, ready to store or push."""

    title: str
    body: str
    data: dict[str, Any]


@dataclass(frozen=True)
class NotificationSpec:
    title: str
    body_template: str
    fallback_body: str
    target: TargetExtractor
    data_keys: tuple[str, ...] = ()
    extra_data: Callable[[Event], dict[str, Any]] | None = None
    # Whether the notification writer keeps an in-app record for this type
    persist: bool = True
    channel_id: str = "default"

    def render(self, event: Event) -> RenderedNotification:
        try:
            body = self.body_template.format_map({key: value for key, value in event.payload.items() if value is not None})
        except (KeyError, IndexError, ValueError):
            body = self.fallback_body

        data: dict[str, Any] = {"eventType": event.type.value}
        for key in self.data_keys:
            if event.payload.get(key) is not None:
                data[key] = event.payload[key]
        if self.extra_data is not None:
            data.update(self.extra_data(event))
        return RenderedNotification(title=self.title, body=body, data=data)


NOTIFICATION_SPECS: dict[EventType, NotificationSpec] = {
    EventType.MOMENT_REQUEST_CREATED: NotificationSpec(
        title="New Moment Request",
        body_template='{senderName} invited you to "{title}"',
        fallback_body="You have a new moment request",
        target=payload_key("receiverId"),
        data_keys=("momentRequestId", "senderName", "title", "startTime", "endTime"),
        extra_data=request_actions,
        channel_id="moment-requests",
    ),
    EventType.MOMENT_REQUEST_APPROVED: NotificationSpec(
        title="Moment Request Approved",
        body_template="{receiverName} approved your moment request",
        fallback_body="Your moment request was approved",
        target=payload_key("senderId"),
        data_keys=("momentRequestId", "momentId", "startTime", "endTime"),
        channel_id="moment-requests",
    ),
    EventType.MOMENT_REQUEST_REJECTED: NotificationSpec(
        title="Moment Request Declined",
        body_template="Your moment request was declined",
        fallback_body="Your moment request was declined",
        target=payload_key("senderId"),
        data_keys=("momentRequestId", "startTime", "endTime"),
        channel_id="moment-requests",
    ),
    EventType.MOMENT_REQUEST_CANCELED: NotificationSpec(
        title="Meeting Canceled",
        body_template="{canceledByName} canceled the meeting",
        fallback_body="A meeting was canceled",
        target=payload_key("notifyUserId"),
        data_keys=("momentRequestId", "startTime", "endTime"),
        channel_id="moment-requests",
    ),
    EventType.MOMENT_REMINDER_DUE: NotificationSpec(
        title="Moment Reminder",
        body_template='"{title}" is starting in {minutesBefore} minutes',
        fallback_body="Your moment is starting soon",
        target=payload_key("userId"),
        data_keys=("momentId", "startTime"),
        channel_id="reminders",
    ),
    EventType.CONTACT_REGISTERED: NotificationSpec(
        title="Contact Joined Moment",
        body_template="{contactName} just joined Moment!",
        fallback_body="One of your contacts just joined Moment!",
        target=payload_key("contactOwnerId"),
        data_keys=("contactUserId", "contactName"),
    ),
    EventType.MOMENT_UPDATED: NotificationSpec(
        title="Meeting Updated",
        body_template='"{title}" has been updated',
        fallback_body="A meeting has been updated",
        target=other_user_or_recipient,
        data_keys=("momentId", "momentRequestId", "userId", "startTime", "endTime"),
        persist=False,
    ),
    EventType.MOMENT_DELETED: NotificationSpec(
        title="Meeting Canceled",
        body_template='"{title}" has been canceled',
        fallback_body="A meeting has been canceled",
        target=other_user_or_recipient,
        data_keys=("momentId", "momentRequestId", "userId", "startTime", "endTime"),
        persist=False,
    ),
}


def get_notification_spec(event_type: EventType | str) -> NotificationSpec | None:
    """Lookup entry for a type, or None when the type produces no notification."""
    try:
        return NOTIFICATION_SPECS.get(EventType(event_type))
    except ValueError:
        return None


def resolve_notification(event: Event, persisted_only: bool = False) -> tuple[str, RenderedNotification] | None:
    """Recipient and rendered notification for an event.

    Returns:
        ``(user_id, notification)``, or None for unmapped types and events without a recipient
    """
    spec = get_notification_spec(event.type)
    if spec is None or (persisted_only and not spec.persist):
        return None
    target = spec.target(event)
    if target is None:
        return None
    return target, spec.render(event)


__all__ = [
    "NOTIFICATION_SPECS",
    "NotificationSpec",
    "RenderedNotification",
    "get_notification_spec",
    "resolve_notification",
]
