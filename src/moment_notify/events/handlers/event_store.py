"""Audit trail subscriber."""

from loguru import logger

from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.event_bus.core import EventHandler
from moment_notify.events.types import Event
from moment_notify.services.event_store_service import EventStoreService, get_event_store_service


class EventStoreWriter(EventHandler):
    """Appends every event it sees to the event store.

    Subscribed to ``"*"``. Storage failures are logged and swallowed.
    """

    def __init__(self, session_factory: SessionFactory = borrow_db_session, service: EventStoreService | None = None):
        self._session_factory = session_factory
        self._service = service or get_event_store_service()

    async def handle(self, event: Event) -> None:
        try:
            await run_in_session(lambda session: self._service.append(session, event), self._session_factory)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to store {event} in the event store: {e}")
