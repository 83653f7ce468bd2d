"""In-app notification subscriber."""

from loguru import logger

from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.event_bus.core import EventHandler
from moment_notify.events.notification_map import NOTIFICATION_SPECS, resolve_notification
from moment_notify.events.types import Event, EventType
from moment_notify.services.notification_service import NotificationService, get_notification_service

PERSISTED_TYPES: tuple[EventType, ...] = tuple(event_type for event_type, spec in NOTIFICATION_SPECS.items() if spec.persist)


class NotificationWriter(EventHandler):
    """Keeps a durable notification record for users who missed socket and push.

    Uses the same lookup table and recipient rule as push delivery.
    """

    def __init__(self, session_factory: SessionFactory = borrow_db_session, service: NotificationService | None = None):
        self._session_factory = session_factory
        self._service = service or get_notification_service()

    async def handle(self, event: Event) -> None:
        resolved = resolve_notification(event, persisted_only=True)
        if resolved is None:
            return

        user_id, notification = resolved
        try:
            await run_in_session(
                lambda session: self._service.create_notification(
                    session,
                    user_id=user_id,
                    type_=event.type.value,
                    title=notification.title,
                    body=notification.body,
                    data=notification.data,
                    created_at=event.timestamp,
                ),
                self._session_factory,
            )
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to store notification for {event}: {e}")
