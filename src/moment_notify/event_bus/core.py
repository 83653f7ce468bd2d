"""Core Event Bus Components.

This module contains the contract every bus adapter implements, together with
the handler base class and the error hierarchy. The publisher, the sweeper and
the subscribers depend on ``EventBus`` only, never on a concrete adapter.

## Key Components

- **EventBus**: Abstract publish/subscribe contract with local handler dispatch
- **EventHandler**: Base class for class-based subscribers
- **EventBusError**: Base exception for all event bus related errors
- **NotConnectedError**: Raised when publishing on a bus that is not connected
- **HandlerRegistrationError**: Raised when handler registration fails
- **EventEmissionError**: Raised when event emission fails

## Usage Example

```python
from moment_notify.event_bus.core import EventHandler
from moment_notify.events.types import Event

class AuditHandler(EventHandler):
    def __init__(self, audit_log: list[str]):
        self.audit_log = audit_log

    async def handle(self, event: Event) -> None:
        self.audit_log.append(event.id)

bus = InMemoryEventBus()
await bus.connect()
await bus.subscribe_to_pattern("moment.*", AuditHandler(audit_log))
await bus.publish(event)
```

"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from moment_notify.events.types import Event, EventType

T_Handler = Callable[[Event], Awaitable[Any] | Any]

WILDCARD = "*"


class EventHandler(ABC):
    """Base class for class-based event subscribers.

    Subclasses implement ``handle``; instances can be registered directly on
    the bus since they are callable.
    """

    @abstractmethod
    async def handle(self, event: Event) -> Any:
        """Handle the event.

        Args:
            event: The event to handle.

        Returns:
            Optional result from handling the event. Can be any type or None.

        Raises:
            Any exception that occurs during handling. Exceptions are caught
            by the event bus and included in the results list.
        """

    def __call__(self, event: Event) -> Any:
        """Make the handler callable."""
        return self.handle(event)


class EventBusError(Exception):
    """Base exception for all event bus related errors.

    Use this for catching any event bus related error:
        ```python
        try:
            await bus.publish(event)
        except EventBusError as e:
            logger.error(f"Event bus error: {e}")
        ```
    """


class NotConnectedError(EventBusError):
    """Raised when the bus is used before ``connect()`` or after ``disconnect()``.

    This is a programmer error and should not occur in steady state.
    """


class HandlerRegistrationError(EventBusError):
    """Raised when handler registration fails.

    This occurs when:
    - The handler is not callable
    - The pattern is empty
    """


class EventEmissionError(EventBusError):
    """Raised when event emission fails.

    This occurs when:
    - The event is not an ``Event`` instance
    - The transport rejects the message
    """


def matches_pattern(event_type: str, pattern: str) -> bool:
    """Check whether an event type matches a subscription pattern.

    ``"*"`` matches everything, ``"<prefix>.*"`` matches any type beginning
    with ``"<prefix>."``, anything else is an exact match.
    """
    if pattern == WILDCARD:
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return event_type == pattern


class EventBus(ABC):
    """Publish/subscribe contract shared by every adapter.

    Handler registration and local dispatch live here; adapters decide how an
    event travels from ``publish`` to ``_dispatch`` (directly for the
    in-process bus, through the broker for Kafka).
    """

    def __init__(self, isolate_events: bool = False) -> None:
        """Initialize handler registries.

        Args:
            isolate_events: If True, each handler receives a deep copy of the event.
        """
        self._handlers: dict[str, list[T_Handler]] = {}
        self._pattern_handlers: dict[str, list[T_Handler]] = {}
        self._isolate_events = isolate_events

    # -- contract -----------------------------------------------------------

    @abstractmethod
    async def publish(self, event: Event) -> None:
        """Publish a single event."""

    @abstractmethod
    async def publish_batch(self, events: list[Event]) -> None:
        """Publish several events."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the transport, flushing in-flight sends where supported."""

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Report whether the bus can currently publish."""

    # -- registration -------------------------------------------------------

    async def subscribe(self, event_type: EventType | str, handler: T_Handler) -> None:
        """Register a handler for an exact event type.

        Raises:
            HandlerRegistrationError: If handler is not callable
        """
        if not callable(handler):
            raise HandlerRegistrationError(f"Handler must be callable: {handler}")

        key = str(event_type)
        self._handlers.setdefault(key, []).append(handler)
        logger.debug(f"{type(self).__name__}: subscribed {_handler_name(handler)} to {key}")

    async def subscribe_to_pattern(self, pattern: str, handler: T_Handler) -> None:
        """Register a handler for every event type matching ``pattern``.

        Raises:
            HandlerRegistrationError: If handler is not callable or pattern is empty
        """
        if not pattern:
            raise HandlerRegistrationError("Pattern must not be empty")
        if not callable(handler):
            raise HandlerRegistrationError(f"Handler must be callable: {handler}")

        self._pattern_handlers.setdefault(pattern, []).append(handler)
        logger.debug(f"{type(self).__name__}: subscribed {_handler_name(handler)} to pattern {pattern}")

    def unsubscribe(self, event_type: EventType | str, handler: T_Handler) -> bool:
        """Remove a handler from an exact type or a pattern registration."""
        key = str(event_type)
        for registry in (self._handlers, self._pattern_handlers):
            if handler in registry.get(key, []):
                registry[key].remove(handler)
                logger.debug(f"Removed handler {_handler_name(handler)} from {key}")
                return True
        return False

    def clear_handlers(self) -> None:
        """Remove every registered handler."""
        self._handlers.clear()
        self._pattern_handlers.clear()
        logger.debug("Cleared all handlers")

    def get_handler_count(self, event_type: EventType | str) -> int:
        """Number of handlers that a publish of ``event_type`` would invoke."""
        return len(self.resolve_handlers(str(event_type)))

    def get_registered_event_types(self) -> list[str]:
        """Exact types and patterns that have at least one handler."""
        return [key for key, handlers in {**self._handlers, **self._pattern_handlers}.items() if handlers]

    def resolve_handlers(self, event_type: str) -> list[T_Handler]:
        """Union of exact-type handlers and matching pattern handlers, in registration order."""
        handlers = list(self._handlers.get(event_type, []))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if matches_pattern(event_type, pattern):
                handlers.extend(pattern_handlers)
        return handlers

    # -- dispatch -----------------------------------------------------------

    async def _dispatch(self, event: Event, isolate: bool | None = None) -> list[Any]:
        """Invoke every resolved handler concurrently and wait for all of them.

        Handler failures are logged and returned in the result list; they are
        never raised to the publisher.

        Returns:
            List of results from all handlers (including exceptions)

        Raises:
            EventEmissionError: If event is not an ``Event`` instance
        """
        if not isinstance(event, Event):
            raise EventEmissionError(f"Event must be an Event instance, got: {type(event).__name__}")

        handlers = self.resolve_handlers(event.type.value)
        if not handlers:
            logger.debug(f"No handlers registered for {event.type.value}")
            return []

        logger.debug(f"Dispatching {event} to {len(handlers)} handlers")

        should_isolate = isolate if isolate is not None else self._isolate_events

        tasks = []
        for handler in handlers:
            handler_event = event.model_copy(deep=True) if should_isolate else event
            tasks.append(self._execute_handler(handler, handler_event))

        results = await asyncio.gather(*tasks, return_exceptions=True)

        failed = sum(1 for r in results if isinstance(r, BaseException))
        if failed > 0:
            logger.warning(f"Event {event.type.value}: {len(results) - failed} successful, {failed} failed handlers")
        logger.trace(f"Event {event.id} results: {results}")

        return results

    async def _execute_handler(self, handler: T_Handler, event: Event) -> Any:
        """Execute a single handler, returning its result or the exception it raised."""
        try:
            logger.trace(f"Executing handler {_handler_name(handler)} for {event.type.value}")
            result = handler(event)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:  # noqa: BLE001
            logger.error(f"Handler {_handler_name(handler)} failed for {event}: {e}")
            return e


def _handler_name(handler: T_Handler) -> str:
    """Readable handler name for log lines."""
    name = getattr(handler, "__qualname__", None)
    if name is None:
        name = type(handler).__name__
    return name
