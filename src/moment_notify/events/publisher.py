"""Event Publisher.

Builds the event for each domain occurrence and hands it to the bus. The
recipient of the resulting notification is always carried in
``metadata.user_id``; the actor, when different, is only in the payload.

Reminders are not published directly: they are persisted as scheduled events
and fired later by the sweeper. That write is the only one in the publish path
whose failure reaches the caller.

## Usage

```python
publisher = EventPublisher(bus)

# Inside a request handler: notification problems must not fail the action
await publisher.publish_safely(
    publisher.publish_moment_request_approved(request_id, sender_id, receiver_id, moment_id, details)
)

# Reminder persistence failures do surface
await publisher.schedule_moment_reminder(moment_id, user_id, reminder_time, details)
```
"""

from collections.abc import Awaitable, Mapping
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.event_bus.core import EventBus
from moment_notify.events.types import AggregateType, Event, EventMetadata, EventPriority, EventType
from moment_notify.exceptions import PersistenceError
from moment_notify.services.scheduled_event_service import ScheduledEventService, get_scheduled_event_service
from moment_notify.utils.clock import to_naive_utc

MOMENT_SOURCE = "moment-service"
REQUEST_SOURCE = "moment-request-service"
USER_SOURCE = "user-service"
REMINDER_SOURCE = "reminder-service"


def _wire_value(value: Any) -> Any:
    """Datetimes travel as ISO strings so payloads survive a JSON round trip unchanged."""
    if isinstance(value, datetime):
        return to_naive_utc(value).isoformat()
    return value


def _parse_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


class EventPublisher:
    """One method per domain occurrence.

    Immediate publishes propagate bus errors (``NotConnectedError``,
    ``EventEmissionError``) so that callers can decide; request paths wrap them
    in ``publish_safely``.
    """

    def __init__(
        self,
        bus: EventBus,
        session_factory: SessionFactory = borrow_db_session,
        scheduled_event_service: ScheduledEventService | None = None,
    ) -> None:
        self._bus = bus
        self._session_factory = session_factory
        self._scheduled_events = scheduled_event_service or get_scheduled_event_service()

    def _build(
        self,
        type_: EventType,
        aggregate_id: Any,
        aggregate_type: AggregateType,
        payload: dict[str, Any],
        source: str,
        recipient: Any,
        priority: EventPriority,
        version: int = 1,
        timestamp: datetime | None = None,
    ) -> Event:
        extra: dict[str, Any] = {} if timestamp is None else {"timestamp": timestamp}
        return Event(
            type=type_,
            aggregate_id=aggregate_id,
            aggregate_type=aggregate_type,
            version=version,
            payload={key: _wire_value(value) for key, value in payload.items()},
            metadata=EventMetadata(
                source=source,
                user_id=str(recipient) if recipient is not None else None,
                priority=priority,
            ),
            **extra,
        )

    async def _publish(self, event: Event) -> Event:
        await self._bus.publish(event)
        logger.debug(f"Published {event}")
        return event

    # -- moments ------------------------------------------------------------

    async def publish_moment_created(self, moment_id: Any, user_id: Any, moment: Mapping[str, Any]) -> Event:
        event = self._build(
            EventType.MOMENT_CREATED,
            moment_id,
            AggregateType.MOMENT,
            {
                "momentId": moment_id,
                "userId": user_id,
                "title": moment.get("notes") or "New Moment",
                "startTime": moment.get("startTime"),
                "endTime": moment.get("endTime"),
                "availability": moment.get("availability"),
            },
            source=MOMENT_SOURCE,
            recipient=user_id,
            priority=EventPriority.NORMAL,
        )
        return await self._publish(event)

    async def publish_moment_updated(
        self,
        moment_id: Any,
        user_id: Any,
        moment: Mapping[str, Any],
        other_user_id: Any = None,
        moment_request_id: Any = None,
    ) -> Event:
        """Notify the other party of a shared meeting, or the owner when there is none."""
        event = self._build(
            EventType.MOMENT_UPDATED,
            moment_id,
            AggregateType.MOMENT,
            {
                "momentId": moment_id,
                "userId": user_id,
                "otherUserId": other_user_id,
                "momentRequestId": moment_request_id,
                "title": moment.get("notes") or moment.get("title") or "Meeting",
                "startTime": moment.get("startTime"),
                "endTime": moment.get("endTime"),
                "availability": moment.get("availability"),
            },
            source=MOMENT_SOURCE,
            recipient=other_user_id or user_id,
            priority=EventPriority.NORMAL,
        )
        return await self._publish(event)

    async def publish_moment_deleted(
        self,
        moment_id: Any,
        user_id: Any,
        moment: Mapping[str, Any],
        other_user_id: Any = None,
        moment_request_id: Any = None,
    ) -> Event:
        """A delete carrying both ``other_user_id`` and ``moment_request_id`` is a cancellation of a shared meeting."""
        payload: dict[str, Any] = {
            "momentId": moment_id,
            "userId": user_id,
            "title": moment.get("notes") or moment.get("title") or "Meeting",
            "startTime": moment.get("startTime"),
            "endTime": moment.get("endTime"),
        }
        # Only cancellation-flavoured deletes carry the other party
        if other_user_id is not None:
            payload["otherUserId"] = other_user_id
        if moment_request_id is not None:
            payload["momentRequestId"] = moment_request_id

        event = self._build(
            EventType.MOMENT_DELETED,
            moment_id,
            AggregateType.MOMENT,
            payload,
            source=MOMENT_SOURCE,
            recipient=other_user_id or user_id,
            priority=EventPriority.NORMAL,
        )
        return await self._publish(event)

    # -- moment requests ----------------------------------------------------

    async def publish_moment_request_created(
        self, request_id: Any, sender_id: Any, receiver_id: Any, request: Mapping[str, Any]
    ) -> Event:
        event = self._build(
            EventType.MOMENT_REQUEST_CREATED,
            request_id,
            AggregateType.MOMENT_REQUEST,
            {
                "momentRequestId": request_id,
                "senderId": sender_id,
                "receiverId": receiver_id,
                "senderName": request.get("senderName"),
                "title": request.get("title"),
                "startTime": request.get("startTime"),
                "endTime": request.get("endTime"),
                "notes": request.get("notes"),
            },
            source=REQUEST_SOURCE,
            recipient=receiver_id,
            priority=EventPriority.HIGH,
        )
        return await self._publish(event)

    async def publish_moment_request_approved(
        self, request_id: Any, sender_id: Any, receiver_id: Any, moment_id: Any, request: Mapping[str, Any]
    ) -> Event:
        event = self._build(
            EventType.MOMENT_REQUEST_APPROVED,
            request_id,
            AggregateType.MOMENT_REQUEST,
            {
                "momentRequestId": request_id,
                "senderId": sender_id,
                "receiverId": receiver_id,
                "receiverName": request.get("receiverName"),
                "momentId": moment_id,
                "title": request.get("title"),
                "startTime": request.get("startTime"),
                "endTime": request.get("endTime"),
            },
            source=REQUEST_SOURCE,
            recipient=sender_id,
            priority=EventPriority.HIGH,
            version=2,
        )
        return await self._publish(event)

    async def publish_moment_request_rejected(
        self, request_id: Any, sender_id: Any, receiver_id: Any, request: Mapping[str, Any]
    ) -> Event:
        event = self._build(
            EventType.MOMENT_REQUEST_REJECTED,
            request_id,
            AggregateType.MOMENT_REQUEST,
            {
                "momentRequestId": request_id,
                "senderId": sender_id,
                "receiverId": receiver_id,
                "receiverName": request.get("receiverName"),
                "title": request.get("title"),
                "startTime": request.get("startTime"),
                "endTime": request.get("endTime"),
            },
            source=REQUEST_SOURCE,
            recipient=sender_id,
            priority=EventPriority.HIGH,
            version=2,
        )
        return await self._publish(event)

    async def publish_moment_canceled(
        self, request_id: Any, notify_user_id: Any, canceled_by_user_id: Any, request: Mapping[str, Any]
    ) -> Event:
        event = self._build(
            EventType.MOMENT_REQUEST_CANCELED,
            request_id,
            AggregateType.MOMENT_REQUEST,
            {
                "momentRequestId": request_id,
                "notifyUserId": notify_user_id,
                "canceledByUserId": canceled_by_user_id,
                "canceledByName": request.get("canceledByName"),
                "title": request.get("title"),
                "startTime": request.get("startTime"),
                "endTime": request.get("endTime"),
            },
            source=REQUEST_SOURCE,
            recipient=notify_user_id,
            priority=EventPriority.HIGH,
        )
        return await self._publish(event)

    # -- contacts -----------------------------------------------------------

    async def publish_contact_registered(self, contact_user_id: Any, contact_owner_id: Any, contact: Mapping[str, Any]) -> Event:
        event = self._build(
            EventType.CONTACT_REGISTERED,
            contact_user_id,
            AggregateType.CONTACT,
            {
                "contactUserId": contact_user_id,
                "contactOwnerId": contact_owner_id,
                "contactName": contact.get("name"),
                "phoneNumber": contact.get("phoneNumber"),
            },
            source=USER_SOURCE,
            recipient=contact_owner_id,
            priority=EventPriority.NORMAL,
        )
        return await self._publish(event)

    # -- reminders ----------------------------------------------------------

    async def schedule_moment_reminder(
        self, moment_id: Any, user_id: Any, reminder_time: datetime, moment: Mapping[str, Any]
    ) -> Event:
        """Persist a reminder to be fired by the sweeper at ``reminder_time``.

        Raises:
            PersistenceError: If the scheduled event could not be stored
        """
        reminder_time = to_naive_utc(reminder_time)
        start_time = moment.get("startTime")
        minutes_before = None
        if start_time is not None:
            minutes_before = round((_parse_datetime(start_time) - reminder_time).total_seconds() / 60)

        event = self._build(
            EventType.MOMENT_REMINDER_DUE,
            moment_id,
            AggregateType.MOMENT,
            {
                "momentId": moment_id,
                "userId": user_id,
                "title": moment.get("title") or moment.get("notes") or "Moment",
                "startTime": start_time,
                "minutesBefore": minutes_before,
            },
            source=REMINDER_SOURCE,
            recipient=user_id,
            priority=EventPriority.HIGH,
            timestamp=reminder_time,
        )

        try:
            await run_in_session(lambda session: self._scheduled_events.schedule(session, event, reminder_time), self._session_factory)
        except SQLAlchemyError as e:
            logger.error(f"Failed to schedule event {event.id}: {e}")
            raise PersistenceError(f"Failed to schedule reminder for moment {moment_id}: {e}") from e
        return event

    # -- misc ---------------------------------------------------------------

    async def publish_batch(self, events: list[Event]) -> None:
        await self._bus.publish_batch(events)

    async def publish_test_event(self, user_id: Any, data: Mapping[str, Any]) -> Event:
        """Low priority event for checking the delivery channels of one user."""
        event = self._build(
            EventType.CONTACT_REGISTERED,
            user_id,
            AggregateType.USER,
            dict(data),
            source="test",
            recipient=user_id,
            priority=EventPriority.LOW,
        )
        return await self._publish(event)

    @staticmethod
    async def publish_safely(publish: Awaitable[Any]) -> bool:
        """Await a publish call, logging instead of raising when it fails.

        Returns:
            True if the publish went through
        """
        try:
            await publish
            return True
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Event publish failed, continuing without notification: {e!r}")
            return False
