"""Scheduled Event Sweeper.

Fires time-delayed events (reminders) once they are due. Each run picks up to
50 pending rows that are due and still have attempts left, oldest first, and
publishes them one by one. A row that fails three times is marked failed and
never picked up again.
"""

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, ProgrammingError

from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.event_bus.core import EventBus
from moment_notify.events.types import Event
from moment_notify.models.base_model import ScheduledEventStatus
from moment_notify.services.scheduled_event_service import ScheduledEventService, get_scheduled_event_service
from moment_notify.utils.clock import utc_now

MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefined table")


def is_missing_table_error(error: Exception) -> bool:
    """True for errors raised because the scheduled events table is not migrated yet."""
    message = str(error).lower()
    return any(marker in message for marker in MISSING_TABLE_MARKERS)


class ScheduledEventSweeper:
    def __init__(
        self,
        bus: EventBus,
        session_factory: SessionFactory = borrow_db_session,
        service: ScheduledEventService | None = None,
    ) -> None:
        self._bus = bus
        self._session_factory = session_factory
        self._service = service or get_scheduled_event_service()

    async def sweep(self) -> int:
        """Publish every due scheduled event.

        Returns:
            Number of events fired in this run
        """
        try:
            due = await run_in_session(lambda session: self._service.get_due(session, utc_now()), self._session_factory)
        except (OperationalError, ProgrammingError) as e:
            if is_missing_table_error(e):
                logger.debug("Scheduled events table not present yet, nothing to sweep")
                return 0
            raise

        if not due:
            return 0

        logger.debug(f"Sweeping {len(due)} due scheduled events")
        fired = 0
        for row in due:
            try:
                event = Event.from_json(row.event_data)
                await self._bus.publish(event)
            except (ValidationError, ValueError) as e:
                await self._fail(row, f"undecodable event data: {e}")
                continue
            except Exception as e:  # noqa: BLE001
                await self._fail(row, repr(e))
                continue

            await run_in_session(lambda session: self._service.mark_fired(session, row.id), self._session_factory)
            fired += 1
            logger.info(f"Fired scheduled event {row.id} ({event.type.value})")

        return fired

    async def _fail(self, row, error: str) -> None:
        status = await run_in_session(lambda session: self._service.record_failure(session, row, error), self._session_factory)
        if status == ScheduledEventStatus.FAILED:
            logger.error(f"Scheduled event {row.id} failed permanently after {row.attempts + 1} attempts: {error}")
        else:
            logger.warning(f"Scheduled event {row.id} attempt {row.attempts + 1} failed, will retry: {error}")
