"""Tests for the per-type notification lookup table."""

from moment_notify.events.handlers.notifications import PERSISTED_TYPES
from moment_notify.events.notification_map import NOTIFICATION_SPECS, get_notification_spec, resolve_notification
from moment_notify.events.types import EventType


def test_request_created_renders_for_receiver(event_factory):
    event = event_factory(
        EventType.MOMENT_REQUEST_CREATED,
        payload={"momentRequestId": "r1", "senderId": "u1", "receiverId": "u2", "senderName": "Ann", "title": "Coffee"},
    )

    user_id, notification = resolve_notification(event)

    assert user_id == "u2"
    assert notification.title == "New Moment Request"
    assert notification.body == 'Ann invited you to "Coffee"'
    assert notification.data["eventType"] == "moment.request.created"
    assert notification.data["momentRequestId"] == "r1"
    assert [a["action"] for a in notification.data["actions"]] == ["accept", "reject"]


def test_missing_template_keys_use_fallback(event_factory):
    event = event_factory(EventType.MOMENT_REQUEST_APPROVED, payload={"senderId": "u1"})

    user_id, notification = resolve_notification(event)

    assert user_id == "u1"
    assert notification.body == "Your moment request was approved"


def test_none_values_count_as_missing(event_factory):
    event = event_factory(EventType.CONTACT_REGISTERED, payload={"contactOwnerId": "u1", "contactUserId": "u9", "contactName": None})

    _, notification = resolve_notification(event)

    assert notification.body == "One of your contacts just joined Moment!"


def test_reminder_body(event_factory):
    event = event_factory(EventType.MOMENT_REMINDER_DUE, payload={"userId": "u1", "title": "Standup", "minutesBefore": 15})

    _, notification = resolve_notification(event)

    assert notification.body == '"Standup" is starting in 15 minutes'


def test_unmapped_type(event_factory):
    assert resolve_notification(event_factory(EventType.MOMENT_CREATED, payload={"userId": "u1"})) is None
    assert get_notification_spec("user.verified") is None
    assert get_notification_spec("not.a.type") is None


def test_event_without_recipient(event_factory):
    assert resolve_notification(event_factory(EventType.CONTACT_REGISTERED, payload={"contactName": "Cleo"})) is None


def test_update_notifications_are_push_only(event_factory):
    event = event_factory(EventType.MOMENT_UPDATED, payload={"userId": "u1", "otherUserId": "u2", "title": "Lunch"}, user_id="u2")

    assert resolve_notification(event)[0] == "u2"
    assert resolve_notification(event, persisted_only=True) is None
    assert EventType.MOMENT_UPDATED not in PERSISTED_TYPES
    assert EventType.MOMENT_REQUEST_CREATED in PERSISTED_TYPES
    assert set(PERSISTED_TYPES) < set(NOTIFICATION_SPECS)
