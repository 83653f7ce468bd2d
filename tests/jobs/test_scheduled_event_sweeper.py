"""Tests for the scheduled event sweeper."""

from contextlib import contextmanager
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from moment_notify.event_bus import InMemoryEventBus
from moment_notify.events.notification_map import resolve_notification
from moment_notify.events.publisher import EventPublisher
from moment_notify.events.types import EventType
from moment_notify.jobs.scheduled_events import ScheduledEventSweeper, is_missing_table_error
from moment_notify.models.base_model import ScheduledEventStatus
from moment_notify.models.db_model import ScheduledEvent
from moment_notify.services.scheduled_event_service import ScheduledEventService
from moment_notify.utils.clock import utc_now


class FlakyBus(InMemoryEventBus):
    """Bus whose publishes fail a given number of times."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def publish(self, event) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("broker unavailable")
        await super().publish(event)


@pytest.fixture
async def bus() -> InMemoryEventBus:
    bus = InMemoryEventBus()
    await bus.connect()
    return bus


def schedule(session, event, minutes_from_now: int) -> None:
    ScheduledEventService().schedule(session, event, utc_now() + timedelta(minutes=minutes_from_now))


def get_row(session_factory, id_: str) -> ScheduledEvent:
    with session_factory() as session:
        return session.exec(select(ScheduledEvent).where(ScheduledEvent.id == id_)).one()


class TestScheduledEventSweeper:
    @pytest.mark.asyncio
    async def test_fires_due_events_only(self, bus, session, session_factory, event_factory):
        due = event_factory(EventType.MOMENT_REMINDER_DUE, payload={"userId": "u1"})
        future = event_factory(EventType.MOMENT_REMINDER_DUE, payload={"userId": "u1"})
        schedule(session, due, -1)
        schedule(session, future, 10)

        fired = await ScheduledEventSweeper(bus, session_factory=session_factory).sweep()

        assert fired == 1
        assert [e.id for e in bus.get_published_events()] == [due.id]
        assert get_row(session_factory, due.id).status == ScheduledEventStatus.FIRED
        assert get_row(session_factory, future.id).status == ScheduledEventStatus.PENDING

    @pytest.mark.asyncio
    async def test_fired_event_is_not_fired_again(self, bus, session, session_factory, event_factory):
        schedule(session, event_factory(EventType.MOMENT_REMINDER_DUE), -1)
        sweeper = ScheduledEventSweeper(bus, session_factory=session_factory)

        assert await sweeper.sweep() == 1
        assert await sweeper.sweep() == 0
        assert len(bus.get_published_events()) == 1

    @pytest.mark.asyncio
    async def test_three_failures_mark_failed(self, session, session_factory, event_factory):
        bus = FlakyBus(failures=10)
        await bus.connect()
        event = event_factory(EventType.MOMENT_REMINDER_DUE)
        schedule(session, event, -1)
        sweeper = ScheduledEventSweeper(bus, session_factory=session_factory)

        for _ in range(4):
            assert await sweeper.sweep() == 0

        row = get_row(session_factory, event.id)
        assert row.status == ScheduledEventStatus.FAILED
        assert row.attempts == 3
        assert "broker unavailable" in row.last_error

    @pytest.mark.asyncio
    async def test_retry_succeeds_after_transient_failure(self, session, session_factory, event_factory):
        bus = FlakyBus(failures=1)
        await bus.connect()
        event = event_factory(EventType.MOMENT_REMINDER_DUE)
        schedule(session, event, -1)
        sweeper = ScheduledEventSweeper(bus, session_factory=session_factory)

        assert await sweeper.sweep() == 0
        assert await sweeper.sweep() == 1

        row = get_row(session_factory, event.id)
        assert row.status == ScheduledEventStatus.FIRED
        assert row.attempts == 1

    @pytest.mark.asyncio
    async def test_undecodable_row_counts_as_failure(self, bus, session, session_factory):
        now = utc_now()
        session.add(ScheduledEvent(id="broken", event_data="{not json", scheduled_for=now - timedelta(minutes=1), created_at=now, updated_at=now))
        session.commit()

        assert await ScheduledEventSweeper(bus, session_factory=session_factory).sweep() == 0

        row = get_row(session_factory, "broken")
        assert row.attempts == 1
        assert row.status == ScheduledEventStatus.PENDING

    @pytest.mark.asyncio
    async def test_missing_table_is_a_no_op(self, bus):
        @contextmanager
        def unmigrated_session():
            raise OperationalError("SELECT", {}, Exception("no such table: scheduled_events"))
            yield  # pragma: no cover

        assert await ScheduledEventSweeper(bus, session_factory=unmigrated_session).sweep() == 0

    def test_missing_table_detection(self):
        assert is_missing_table_error(Exception('relation "scheduled_events" does not exist'))
        assert not is_missing_table_error(Exception("connection refused"))


class TestReminderLifecycle:
    @pytest.mark.asyncio
    async def test_scheduled_reminder_fires_once(self, bus, session_factory):
        publisher = EventPublisher(bus, session_factory=session_factory, scheduled_event_service=ScheduledEventService())
        sweeper = ScheduledEventSweeper(bus, session_factory=session_factory, service=ScheduledEventService())
        reminder_time = utc_now() - timedelta(seconds=1)
        start = reminder_time + timedelta(minutes=15)

        scheduled = await publisher.schedule_moment_reminder(7, "u1", reminder_time, {"title": "Standup", "startTime": start})
        assert bus.get_published_events() == []

        assert await sweeper.sweep() == 1

        [fired] = bus.get_events_by_type(EventType.MOMENT_REMINDER_DUE)
        assert fired.id == scheduled.id
        assert fired.payload["minutesBefore"] == 15
        assert fired.metadata.user_id == "u1"
        user_id, notification = resolve_notification(fired)
        assert user_id == "u1"
        assert "15" in notification.body
        assert get_row(session_factory, scheduled.id).status == ScheduledEventStatus.FIRED

        assert await sweeper.sweep() == 0
        assert len(bus.get_published_events()) == 1
