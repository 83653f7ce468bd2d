"""End-to-end tests of the wired notification core on the in-memory bus."""

import json

import httpx
import pytest
from sqlmodel import select

from moment_notify.event_bus import InMemoryEventBus
from moment_notify.event_bus.core import NotConnectedError
from moment_notify.events.system import EventSystem
from moment_notify.events.types import EventType
from moment_notify.models.db_model import EventStoreRecord, Notification
from moment_notify.services.device_service import DeviceService
from moment_notify.settings import Settings


class FakeSocket:
    def __init__(self):
        self.frames: list[dict] = []

    async def send_json(self, data) -> None:
        self.frames.append(data)


class RecordingExpo:
    def __init__(self):
        self.sent: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        messages = json.loads(request.content)
        self.sent.extend(messages)
        return httpx.Response(200, json={"data": [{"status": "ok", "id": f"ticket-{i}"} for i, _ in enumerate(messages)]})


@pytest.fixture
def expo() -> RecordingExpo:
    return RecordingExpo()


@pytest.fixture
async def system(session_factory, expo):
    settings = Settings(_env_file=None, push_enabled=True, scheduler_enabled=False)
    system = EventSystem(settings, bus=InMemoryEventBus(), session_factory=session_factory, push_transport=httpx.MockTransport(expo))
    await system.init()
    yield system
    await system.shutdown()


class TestEventSystem:
    @pytest.mark.asyncio
    async def test_request_created_reaches_every_channel(self, system, expo, session, session_factory):
        """A moment request yields one stored notification, one push and one socket frame for the receiver."""
        DeviceService().register_or_update(session, user_id="u2", device_id="phone", platform="android", app_version="1.0.0", push_token="T-u2")
        receiver, sender = FakeSocket(), FakeSocket()
        system.connections.register("u2", receiver)
        system.connections.register("u1", sender)

        event = await system.publisher.publish_moment_request_created(
            "r1", "u1", "u2", {"senderName": "Ann", "title": "Coffee", "startTime": "2026-10-20T10:00:00"}
        )

        with session_factory() as check:
            notifications = check.exec(select(Notification)).all()
            stored = check.exec(select(EventStoreRecord)).all()
        assert [(n.user_id, n.type) for n in notifications] == [("u2", "moment.request.created")]
        assert notifications[0].body == 'Ann invited you to "Coffee"'
        assert [r.id for r in stored] == [event.id]

        assert [m["to"] for m in expo.sent] == ["T-u2"]
        assert len(receiver.frames) == 1
        assert receiver.frames[0]["event"] == "moment:request"
        assert sender.frames == []

    @pytest.mark.asyncio
    async def test_plain_delete_is_only_audited(self, system, expo, session_factory):
        receiver = FakeSocket()
        system.connections.register("u1", receiver)

        await system.publisher.publish_moment_deleted("m1", "u1", {"notes": "Gym"})

        with session_factory() as check:
            assert check.exec(select(Notification)).all() == []
            assert len(check.exec(select(EventStoreRecord)).all()) == 1
        assert receiver.frames == []

    @pytest.mark.asyncio
    async def test_subscriptions(self, system):
        assert system.initialized
        assert await system.is_healthy()
        assert "*" in system.bus.get_registered_event_types()
        assert system.bus.get_handler_count(EventType.MOMENT_REQUEST_CREATED) == 4
        assert system.bus.get_handler_count(EventType.MOMENT_CREATED) == 1

    @pytest.mark.asyncio
    async def test_shutdown_disconnects_bus(self, session_factory):
        settings = Settings(_env_file=None, push_enabled=False)
        system = EventSystem(settings, bus=InMemoryEventBus(), session_factory=session_factory)
        await system.init()
        assert system.delivery is None

        await system.shutdown()

        assert not system.initialized
        with pytest.raises(NotConnectedError):
            await system.publisher.publish_test_event("u1", {})
