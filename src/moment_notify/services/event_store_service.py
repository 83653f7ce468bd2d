"""Service for the append-only event store."""

from datetime import datetime
from functools import lru_cache

from sqlalchemy import delete
from sqlmodel import Session, select

from moment_notify.events.types import Event
from moment_notify.models.db_model import EventStoreRecord
from moment_notify.utils.clock import utc_now


class EventStoreService:
    def append(self, session: Session, event: Event) -> EventStoreRecord:
        """Write one audit row for ``event``."""
        wire = event.to_wire_dict()
        record = EventStoreRecord(
            id=event.id,
            event_type=event.type.value,
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type.value,
            version=event.version,
            event_data=wire,
            event_metadata=wire["metadata"],
            timestamp=event.timestamp,
            created_at=utc_now(),
        )
        session.add(record)
        session.commit()
        return record

    def get_for_aggregate(self, session: Session, aggregate_id: str, limit: int = 100) -> list[EventStoreRecord]:
        """Stored events of one aggregate in occurrence order."""
        stmt = (
            select(EventStoreRecord)
            .where(EventStoreRecord.aggregate_id == str(aggregate_id))
            .order_by(EventStoreRecord.timestamp)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def delete_older_than(self, session: Session, cutoff: datetime) -> int:
        rows = session.execute(delete(EventStoreRecord).where(EventStoreRecord.created_at < cutoff)).rowcount
        session.commit()
        return rows


@lru_cache
def get_event_store_service() -> EventStoreService:
    """Get the event store service singleton."""
    return EventStoreService()
