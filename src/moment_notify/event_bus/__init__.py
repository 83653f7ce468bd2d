"""Event Bus for decoupled delivery of domain events.

Producers publish an ``Event`` without knowing who consumes it; subscribers
register for an exact event type or a pattern. Two adapters implement the
same contract:

- **InMemoryEventBus**: dispatches within the publish call, for tests and
  single-instance deployments
- **KafkaEventBus**: produces to Kafka and dispatches from a consumer group,
  for multi-instance deployments

## Quick Start

```python
from moment_notify.event_bus import create_event_bus

bus = create_event_bus()
await bus.connect()
await bus.subscribe_to_pattern("moment.request.*", on_request_event)
await bus.publish(event)
```

Handler failures never propagate to the publisher; they are logged and
returned in the dispatch results.

For the contract and error types, see `core.py`.
"""

from .core import (
    EventBus,
    EventBusError,
    EventEmissionError,
    EventHandler,
    HandlerRegistrationError,
    NotConnectedError,
    matches_pattern,
)
from .factory import create_event_bus
from .memory import InMemoryEventBus
from .tasks import drain_detached, spawn_detached

__all__ = [
    "EventBus",
    "EventBusError",
    "EventEmissionError",
    "EventHandler",
    "HandlerRegistrationError",
    "InMemoryEventBus",
    "NotConnectedError",
    "create_event_bus",
    "drain_detached",
    "matches_pattern",
    "spawn_detached",
]
