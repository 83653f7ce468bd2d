"""Tests for the notification, scheduled event, push ticket and event store services."""

from datetime import timedelta

import pytest
from sqlmodel import select

from moment_notify.events.types import EventType
from moment_notify.exceptions import ResourceNotFoundError
from moment_notify.models.base_model import PushTicketStatus, ScheduledEventStatus
from moment_notify.models.db_model import PushTicket, ScheduledEvent
from moment_notify.services.event_store_service import EventStoreService
from moment_notify.services.notification_service import NotificationService
from moment_notify.services.push_ticket_service import PushTicketService
from moment_notify.services.scheduled_event_service import ScheduledEventService
from moment_notify.utils.clock import utc_now


class TestNotificationService:
    def test_create_and_list_newest_first(self, session):
        service = NotificationService()
        now = utc_now()
        for minutes in (3, 2, 1):
            service.create_notification(session, "u1", "moment.request.created", f"t{minutes}", "b", created_at=now - timedelta(minutes=minutes))
        service.create_notification(session, "u2", "moment.request.created", "other", "b")

        items, total = service.list_for_user(session, "u1", page=1, limit=2)

        assert total == 3
        assert [n.title for n in items] == ["t1", "t2"]
        assert all(n.is_delivered and not n.is_read for n in items)

        second_page, _ = service.list_for_user(session, "u1", page=2, limit=2)
        assert [n.title for n in second_page] == ["t3"]

    def test_mark_as_read(self, session):
        service = NotificationService()
        notification = service.create_notification(session, "u1", "contact.registered", "t", "b", {"contactUserId": "7"})

        read = service.mark_as_read(session, "u1", notification.id)

        assert read.is_read
        assert read.read_at is not None
        assert read.data == {"contactUserId": "7"}

    def test_mark_as_read_other_user(self, session):
        service = NotificationService()
        notification = service.create_notification(session, "u1", "contact.registered", "t", "b")

        with pytest.raises(ResourceNotFoundError):
            service.mark_as_read(session, "u2", notification.id)

    def test_delete_older_than(self, session):
        service = NotificationService()
        service.create_notification(session, "u1", "contact.registered", "old", "b", created_at=utc_now() - timedelta(days=31))
        service.create_notification(session, "u1", "contact.registered", "new", "b")

        assert service.delete_older_than(session, utc_now() - timedelta(days=30)) == 1


class TestScheduledEventService:
    def test_due_rows_oldest_first(self, session, event_factory):
        service = ScheduledEventService()
        now = utc_now()
        later = event_factory(EventType.MOMENT_REMINDER_DUE)
        earlier = event_factory(EventType.MOMENT_REMINDER_DUE)
        future = event_factory(EventType.MOMENT_REMINDER_DUE)
        service.schedule(session, later, now - timedelta(minutes=1))
        service.schedule(session, earlier, now - timedelta(minutes=5))
        service.schedule(session, future, now + timedelta(minutes=5))

        assert [row.id for row in service.get_due(session, now)] == [earlier.id, later.id]

    def test_failure_attempts(self, session, event_factory):
        service = ScheduledEventService()
        event = event_factory(EventType.MOMENT_REMINDER_DUE)
        service.schedule(session, event, utc_now() - timedelta(minutes=1))

        statuses = []
        for _ in range(3):
            row = session.get(ScheduledEvent, event.id)
            session.refresh(row)
            statuses.append(service.record_failure(session, row, "boom"))

        assert statuses == [ScheduledEventStatus.PENDING, ScheduledEventStatus.PENDING, ScheduledEventStatus.FAILED]
        assert service.get_due(session) == []

    def test_fired_rows_are_not_due(self, session, event_factory):
        service = ScheduledEventService()
        event = event_factory(EventType.MOMENT_REMINDER_DUE)
        service.schedule(session, event, utc_now() - timedelta(minutes=1))

        service.mark_fired(session, event.id)

        assert service.get_due(session) == []
        assert service.delete_finished_older_than(session, utc_now() + timedelta(seconds=1)) == 1


class TestPushTicketService:
    def test_tickets_due_after_delay(self, session):
        service = PushTicketService()
        service.record_tickets(session, [("ticket-1", "T1", "u1"), ("ticket-2", "T2", "u1")])

        assert service.get_due(session, utc_now()) == []
        due = service.get_due(session, utc_now() + timedelta(minutes=16))
        assert {t.id for t in due} == {"ticket-1", "ticket-2"}

    def test_checked_tickets_leave_the_queue(self, session):
        service = PushTicketService()
        service.record_tickets(session, [("ticket-1", "T1", "u1")])

        service.mark_checked(session, "ticket-1", PushTicketStatus.OK)

        assert service.get_due(session, utc_now() + timedelta(hours=1)) == []
        ticket = session.exec(select(PushTicket)).one()
        session.refresh(ticket)
        assert ticket.status == PushTicketStatus.OK
        assert ticket.checked_at is not None


class TestEventStoreService:
    def test_append_and_read_back(self, session, event_factory):
        service = EventStoreService()
        event = event_factory(payload={"senderName": "Ann"}, aggregate_id="r9")

        service.append(session, event)

        [record] = service.get_for_aggregate(session, "r9")
        assert record.event_type == "moment.request.created"
        assert record.event_data["payload"] == {"senderName": "Ann"}
        assert record.event_metadata["userId"] == "u2"
