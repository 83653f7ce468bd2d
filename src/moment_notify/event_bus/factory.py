"""Adapter selection from configuration."""

from loguru import logger

from moment_notify.event_bus.core import EventBus
from moment_notify.event_bus.memory import InMemoryEventBus
from moment_notify.settings import Settings, get_settings


def create_event_bus(settings: Settings | None = None) -> EventBus:
    """Build the event bus adapter named by ``MOMENT_NOTIFY_EVENT_BUS_ADAPTER``.

    Raises:
        ValueError: For an unknown adapter or a Kafka adapter without brokers
    """
    settings = settings or get_settings()
    adapter = settings.event_bus_adapter

    if adapter == "memory":
        logger.info("Using in-memory event bus")
        return InMemoryEventBus()

    if adapter == "kafka":
        # Imported lazily so the memory adapter works without a broker client configured
        from moment_notify.event_bus.kafka import KafkaEventBus

        logger.info(f"Using Kafka event bus (brokers={settings.kafka_brokers})")
        return KafkaEventBus(settings)

    raise ValueError(f"Unknown event bus adapter: {adapter}")
