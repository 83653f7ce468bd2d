"""Tests for the event bus contract and the in-memory adapter."""

import asyncio
from typing import Any

import pytest

from moment_notify.event_bus import EventHandler, InMemoryEventBus, create_event_bus, drain_detached, spawn_detached
from moment_notify.event_bus.tasks import pending_task_count
from moment_notify.event_bus.core import EventEmissionError, HandlerRegistrationError, NotConnectedError, matches_pattern
from moment_notify.events.types import EventType
from moment_notify.settings import Settings


class RecordingHandler(EventHandler):
    """Class-based handler that remembers what it saw."""

    def __init__(self):
        self.seen: list[str] = []

    async def handle(self, event) -> str:
        self.seen.append(event.type.value)
        return f"recorded: {event.type.value}"


class FailingHandler(EventHandler):
    """Handler that always fails."""

    async def handle(self, event) -> Any:
        raise ValueError("handler failure")


@pytest.fixture
async def bus() -> InMemoryEventBus:
    bus = InMemoryEventBus()
    await bus.connect()
    return bus


class TestPatternMatching:
    """Subscription pattern semantics."""

    @pytest.mark.parametrize(
        "event_type,pattern,expected",
        [
            ("moment.request.created", "*", True),
            ("moment.request.created", "moment.*", True),
            ("moment.request.created", "moment.request.*", True),
            ("moment.created", "moment.request.*", False),
            ("moment.created", "moment.created", True),
            ("moment.created", "moment.create", False),
            ("momentous.created", "moment.*", False),
        ],
    )
    def test_matches_pattern(self, event_type: str, pattern: str, expected: bool):
        assert matches_pattern(event_type, pattern) is expected


class TestInMemoryEventBus:
    """Test cases for InMemoryEventBus."""

    @pytest.mark.asyncio
    async def test_publish_without_handlers(self, bus, event_factory):
        """Publishing with no subscribers is a no-op."""
        results = await bus.publish_and_wait(event_factory())
        assert results == []
        assert len(bus.get_published_events()) == 1

    @pytest.mark.asyncio
    async def test_exact_and_pattern_handlers_both_invoked(self, bus, event_factory):
        """Exact-type handlers and matching pattern handlers all see the event."""
        exact, prefix, everything, other = RecordingHandler(), RecordingHandler(), RecordingHandler(), RecordingHandler()
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, exact)
        await bus.subscribe_to_pattern("moment.request.*", prefix)
        await bus.subscribe_to_pattern("*", everything)
        await bus.subscribe(EventType.MOMENT_CREATED, other)

        await bus.publish(event_factory(EventType.MOMENT_REQUEST_CREATED))

        assert exact.seen == ["moment.request.created"]
        assert prefix.seen == ["moment.request.created"]
        assert everything.seen == ["moment.request.created"]
        assert other.seen == []
        assert bus.get_handler_count(EventType.MOMENT_REQUEST_CREATED) == 3

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_affect_siblings(self, bus, event_factory):
        """A raising handler is reported in the results; the others still run."""
        recorder = RecordingHandler()
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, FailingHandler())
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, recorder)

        results = await bus.publish_and_wait(event_factory())

        assert isinstance(results[0], ValueError)
        assert results[1] == "recorded: moment.request.created"
        assert recorder.seen == ["moment.request.created"]

    @pytest.mark.asyncio
    async def test_publish_never_raises_handler_errors(self, bus, event_factory):
        await bus.subscribe_to_pattern("*", FailingHandler())
        await bus.publish(event_factory())

    @pytest.mark.asyncio
    async def test_sync_function_handler(self, bus, event_factory):
        """Plain functions are accepted as handlers."""
        seen = []
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, lambda event: seen.append(event.id))

        event = event_factory()
        await bus.publish(event)

        assert seen == [event.id]

    @pytest.mark.asyncio
    async def test_handlers_run_concurrently(self, bus, event_factory):
        """Handlers are awaited together, not one after another."""
        order = []

        async def slow_handler(event) -> None:
            await asyncio.sleep(0.05)
            order.append("slow")

        async def fast_handler(event) -> None:
            order.append("fast")

        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, slow_handler)
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, fast_handler)
        await bus.publish(event_factory())

        assert order == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_publish_before_connect_raises(self, event_factory):
        bus = InMemoryEventBus()
        with pytest.raises(NotConnectedError):
            await bus.publish(event_factory())

    @pytest.mark.asyncio
    async def test_publish_after_disconnect_raises(self, bus, event_factory):
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, RecordingHandler())
        await bus.disconnect()

        assert not await bus.is_healthy()
        assert bus.get_registered_event_types() == []
        with pytest.raises(NotConnectedError):
            await bus.publish(event_factory())

    @pytest.mark.asyncio
    async def test_non_event_rejected(self, bus):
        with pytest.raises(EventEmissionError):
            await bus.publish_and_wait({"type": "moment.created"})  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_non_callable_handler_rejected(self, bus):
        with pytest.raises(HandlerRegistrationError):
            await bus.subscribe(EventType.MOMENT_CREATED, "not a handler")  # type: ignore[arg-type]
        with pytest.raises(HandlerRegistrationError):
            await bus.subscribe_to_pattern("", RecordingHandler())

    @pytest.mark.asyncio
    async def test_unsubscribe(self, bus, event_factory):
        recorder = RecordingHandler()
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, recorder)

        assert bus.unsubscribe(EventType.MOMENT_REQUEST_CREATED, recorder) is True
        assert bus.unsubscribe(EventType.MOMENT_REQUEST_CREATED, recorder) is False

        await bus.publish(event_factory())
        assert recorder.seen == []

    @pytest.mark.asyncio
    async def test_batch_equivalent_to_sequential_publishes(self, bus, event_factory):
        """A batch delivers the same events, in the same order, as single publishes."""
        recorder = RecordingHandler()
        await bus.subscribe_to_pattern("*", recorder)
        events = [
            event_factory(EventType.MOMENT_REQUEST_CREATED),
            event_factory(EventType.MOMENT_REQUEST_APPROVED),
            event_factory(EventType.MOMENT_REQUEST_REJECTED),
        ]

        await bus.publish_batch(events)

        assert recorder.seen == [e.type.value for e in events]
        assert [e.id for e in bus.get_published_events()] == [e.id for e in events]
        assert len(bus.get_events_by_type(EventType.MOMENT_REQUEST_APPROVED)) == 1

    @pytest.mark.asyncio
    async def test_event_isolation(self, event_factory):
        """With isolation each handler receives its own copy of the payload."""
        bus = InMemoryEventBus(isolate_events=True)
        await bus.connect()
        observed = []

        async def mutating_handler(event) -> None:
            event.payload["title"] = "mutated"

        async def observing_handler(event) -> None:
            observed.append(event.payload["title"])

        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, mutating_handler)
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, observing_handler)
        await bus.publish(event_factory(payload={"title": "original"}))

        assert observed == ["original"]

    @pytest.mark.asyncio
    async def test_no_isolation_shares_payload(self, bus, event_factory):
        observed = []

        async def mutating_handler(event) -> None:
            event.payload["title"] = "mutated"

        async def observing_handler(event) -> None:
            observed.append(event.payload["title"])

        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, mutating_handler)
        await bus.subscribe(EventType.MOMENT_REQUEST_CREATED, observing_handler)
        await bus.publish(event_factory(payload={"title": "original"}))

        assert observed == ["mutated"]


class TestEventBusFactory:
    """Adapter selection from settings."""

    def test_memory_adapter(self):
        bus = create_event_bus(Settings(_env_file=None, event_bus_adapter="memory"))
        assert isinstance(bus, InMemoryEventBus)

    def test_kafka_adapter(self):
        from moment_notify.event_bus.kafka import KafkaEventBus

        bus = create_event_bus(Settings(_env_file=None, event_bus_adapter="kafka", kafka_brokers="broker-1:9092"))
        assert isinstance(bus, KafkaEventBus)

    def test_kafka_adapter_without_brokers(self):
        with pytest.raises(ValueError):
            create_event_bus(Settings(_env_file=None, event_bus_adapter="kafka", kafka_brokers=" , "))


class TestDetachedTasks:
    """Background work spawned without awaiting."""

    @pytest.mark.asyncio
    async def test_drain_waits_for_pending_work(self):
        done: list[str] = []

        async def work() -> None:
            await asyncio.sleep(0.01)
            done.append("finished")

        before = pending_task_count()
        spawn_detached(work(), name="work")
        assert pending_task_count() == before + 1

        await drain_detached()

        assert done == ["finished"]
        assert pending_task_count() == 0

    @pytest.mark.asyncio
    async def test_failure_is_contained(self):
        async def broken() -> None:
            raise RuntimeError("boom")

        task = spawn_detached(broken(), name="broken")
        await drain_detached()

        assert isinstance(task.exception(), RuntimeError)
        assert pending_task_count() == 0

    @pytest.mark.asyncio
    async def test_drain_cancels_tasks_past_the_timeout(self):
        task = spawn_detached(asyncio.sleep(10), name="slow")

        await drain_detached(timeout=0.01)
        await asyncio.sleep(0)

        assert task.cancelled()
