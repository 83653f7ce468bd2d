"""Service for scheduled (time-delayed) events."""

from datetime import datetime
from functools import lru_cache

from loguru import logger
from sqlalchemy import delete, update
from sqlmodel import Session, select

from moment_notify.constants import SCHEDULED_EVENT_BATCH_SIZE, SCHEDULED_EVENT_MAX_ATTEMPTS
from moment_notify.events.types import Event
from moment_notify.models.base_model import ScheduledEventStatus
from moment_notify.models.db_model import ScheduledEvent
from moment_notify.utils.clock import to_naive_utc, utc_now


class ScheduledEventService:
    """Service for scheduled event rows.

    Rows are created by the publisher and transitioned only by the sweeper.
    """

    def schedule(self, session: Session, event: Event, scheduled_for: datetime) -> ScheduledEvent:
        """Persist an event to be published at ``scheduled_for``."""
        now = utc_now()
        row = ScheduledEvent(
            id=event.id,
            event_data=event.to_json(),
            scheduled_for=to_naive_utc(scheduled_for),
            status=ScheduledEventStatus.PENDING.value,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        session.commit()
        session.refresh(row)
        logger.info(f"Scheduled event {event.id} ({event.type.value}) for {row.scheduled_for.isoformat()}")
        return row

    def get_due(self, session: Session, now: datetime | None = None, limit: int = SCHEDULED_EVENT_BATCH_SIZE) -> list[ScheduledEvent]:
        """Pending rows whose fire time has passed, oldest first."""
        stmt = (
            select(ScheduledEvent)
            .where(
                ScheduledEvent.scheduled_for <= (now or utc_now()),
                ScheduledEvent.status == ScheduledEventStatus.PENDING.value,
                ScheduledEvent.attempts < SCHEDULED_EVENT_MAX_ATTEMPTS,
            )
            .order_by(ScheduledEvent.scheduled_for)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def mark_fired(self, session: Session, id_: str) -> None:
        stmt = (
            update(ScheduledEvent)
            .where(ScheduledEvent.id == id_)
            .values(status=ScheduledEventStatus.FIRED.value, updated_at=utc_now())
        )
        session.execute(stmt)
        session.commit()

    def record_failure(self, session: Session, row: ScheduledEvent, error: str) -> str:
        """Count a failed attempt; the row fails for good on its last allowed attempt.

        Returns:
            The row status after the update
        """
        attempts = row.attempts + 1
        status = ScheduledEventStatus.FAILED if attempts >= SCHEDULED_EVENT_MAX_ATTEMPTS else ScheduledEventStatus.PENDING
        stmt = (
            update(ScheduledEvent)
            .where(ScheduledEvent.id == row.id)
            .values(attempts=attempts, status=status.value, last_error=error[:1000], updated_at=utc_now())
        )
        session.execute(stmt)
        session.commit()
        return status.value

    def delete_finished_older_than(self, session: Session, cutoff: datetime) -> int:
        """Purge fired and failed rows last touched before ``cutoff``."""
        stmt = delete(ScheduledEvent).where(
            ScheduledEvent.status.in_([ScheduledEventStatus.FIRED.value, ScheduledEventStatus.FAILED.value]),
            ScheduledEvent.updated_at < cutoff,
        )
        rows = session.execute(stmt).rowcount
        session.commit()
        return rows


@lru_cache
def get_scheduled_event_service() -> ScheduledEventService:
    """Get the scheduled event service singleton."""
    return ScheduledEventService()
