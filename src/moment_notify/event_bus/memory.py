"""In-process Event Bus Adapter.

Single-instance adapter for tests and small deployments. ``publish`` resolves
the handlers registered for the event type plus every matching pattern and
awaits all of them concurrently within the call; handler failures are
isolated and logged.

## Usage

```python
from moment_notify.event_bus import InMemoryEventBus
from moment_notify.events.types import EventType

bus = InMemoryEventBus()
await bus.connect()

async def send_welcome(event: Event) -> None:
    ...

await bus.subscribe(EventType.CONTACT_REGISTERED, send_welcome)
await bus.subscribe_to_pattern("*", audit_everything)

results = await bus.publish_and_wait(event)
print(f"Handler results: {results}")
```

"""

from typing import Any

from loguru import logger

from moment_notify.event_bus.core import EventBus, NotConnectedError
from moment_notify.events.types import Event, EventType


class InMemoryEventBus(EventBus):
    """Synchronous in-process bus.

    Keeps a log of published events so tests and the test endpoint can
    inspect what went through the bus.
    """

    def __init__(self, isolate_events: bool = False) -> None:
        super().__init__(isolate_events=isolate_events)
        self._events: list[Event] = []
        self._connected = False
        logger.debug(f"InMemoryEventBus initialized (isolate_events={isolate_events})")

    async def connect(self) -> None:
        self._connected = True
        logger.info("InMemoryEventBus connected")

    async def disconnect(self) -> None:
        self.clear_handlers()
        self._events.clear()
        self._connected = False
        logger.info("InMemoryEventBus disconnected")

    async def is_healthy(self) -> bool:
        return self._connected

    async def publish(self, event: Event) -> None:
        """Publish an event and wait until every handler has settled.

        Raises:
            NotConnectedError: If the bus is not connected
        """
        await self.publish_and_wait(event)

    async def publish_and_wait(self, event: Event, isolate: bool | None = None) -> list[Any]:
        """Publish an event and return the per-handler results (including exceptions).

        Raises:
            NotConnectedError: If the bus is not connected
        """
        if not self._connected:
            raise NotConnectedError("InMemoryEventBus not connected")

        self._events.append(event)
        return await self._dispatch(event, isolate)

    async def publish_batch(self, events: list[Event]) -> None:
        """Publish events one after another, preserving the given order."""
        if not self._connected:
            raise NotConnectedError("InMemoryEventBus not connected")

        for event in events:
            await self.publish(event)

    def get_published_events(self) -> list[Event]:
        """Copy of every event published since the last clear."""
        return list(self._events)

    def get_events_by_type(self, event_type: EventType | str) -> list[Event]:
        """Published events of a single type."""
        return [event for event in self._events if event.type == str(event_type)]

    def clear_events(self) -> None:
        """Forget the published event log."""
        self._events.clear()
