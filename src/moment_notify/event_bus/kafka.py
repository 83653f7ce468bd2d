"""Broker-backed Event Bus Adapter (Kafka).

Events are serialized to the camelCase wire form and produced to a topic
derived from the event, keyed by aggregate id so that events for the same
aggregate land on the same partition and keep their relative order.
A consumer in the configured consumer group reads every topic in the
namespace and dispatches to the locally registered handlers.

Delivery is at-least-once: the producer is idempotent with ``acks="all"``,
offsets are committed after dispatch, connection setup retries with
bounded exponential backoff, and the consumer resumes after broker errors.

Topic naming: ``{namespace}.{aggregateType}.{category}`` where ``category``
is the last dot segment of the event type, e.g. ``moment.moment_request.created``.
"""

import asyncio
import re
from collections.abc import Callable
from typing import Any

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, ConsumerRecord
from aiokafka.errors import KafkaError
from loguru import logger
from pydantic import ValidationError
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from moment_notify.event_bus.core import EventBus, EventEmissionError, NotConnectedError
from moment_notify.event_bus.tasks import spawn_detached
from moment_notify.events.types import Event
from moment_notify.settings import Settings
from moment_notify.utils.clock import epoch_millis

ProducerFactory = Callable[[], Any]
ConsumerFactory = Callable[[], Any]


def topic_for_event(event: Event, namespace: str) -> str:
    """Derive the topic an event is produced to."""
    category = event.type.value.rsplit(".", 1)[-1]
    return f"{namespace}.{event.aggregate_type.value}.{category}"


def build_message(event: Event) -> dict[str, Any]:
    """Build the producer arguments (key, value, headers) for an event."""
    return {
        "key": event.aggregate_id.encode("utf-8"),
        "value": event.to_json().encode("utf-8"),
        "headers": [
            ("eventType", event.type.value.encode("utf-8")),
            ("eventId", event.id.encode("utf-8")),
            ("aggregateType", event.aggregate_type.value.encode("utf-8")),
            ("timestamp", str(epoch_millis(event.timestamp)).encode("utf-8")),
        ],
    }


class KafkaEventBus(EventBus):
    """Kafka adapter with an idempotent producer and a consumer group.

    Producer and consumer are created on ``connect``; factories can be
    injected to substitute the aiokafka clients.
    """

    def __init__(
        self,
        settings: Settings,
        producer_factory: ProducerFactory | None = None,
        consumer_factory: ConsumerFactory | None = None,
        consumer_restart_backoff: float = 0.5,
    ) -> None:
        super().__init__()
        if not settings.kafka_broker_list:
            raise ValueError("Kafka configuration requires at least one broker (MOMENT_NOTIFY_KAFKA_BROKERS)")

        self._settings = settings
        self._namespace = settings.kafka_namespace
        self._producer_factory = producer_factory or self._default_producer
        self._consumer_factory = consumer_factory or self._default_consumer
        self._producer: Any = None
        self._consumer: Any = None
        self._consume_task: asyncio.Task | None = None
        self._consumer_restart_backoff = consumer_restart_backoff
        self._connected = False

    # -- client construction -----------------------------------------------

    def _security_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"security_protocol": self._settings.kafka_security_protocol}
        if self._settings.kafka_sasl_mechanism:
            kwargs.update(
                sasl_mechanism=self._settings.kafka_sasl_mechanism,
                sasl_plain_username=self._settings.kafka_sasl_username,
                sasl_plain_password=self._settings.kafka_sasl_password,
            )
        return kwargs

    def _default_producer(self) -> AIOKafkaProducer:
        return AIOKafkaProducer(
            bootstrap_servers=self._settings.kafka_broker_list,
            client_id=self._settings.kafka_client_id,
            enable_idempotence=True,
            acks="all",
            **self._security_kwargs(),
        )

    def _default_consumer(self) -> AIOKafkaConsumer:
        return AIOKafkaConsumer(
            bootstrap_servers=self._settings.kafka_broker_list,
            client_id=self._settings.kafka_client_id,
            group_id=self._settings.kafka_group_id,
            enable_auto_commit=False,
            auto_offset_reset="latest",
            session_timeout_ms=30000,
            heartbeat_interval_ms=3000,
            **self._security_kwargs(),
        )

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        """Start producer and consumer, retrying with exponential backoff.

        Raises:
            KafkaError: If the broker stays unreachable after all attempts
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.kafka_connect_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=10),
            retry=retry_if_exception_type((KafkaError, OSError)),
            before_sleep=before_sleep_log(logger, "WARNING"),
            reraise=True,
        ):
            with attempt:
                await self._start_clients()

        self._consume_task = spawn_detached(self._consume_loop(), name="kafka-event-consumer")
        self._connected = True
        logger.info(f"KafkaEventBus connected to {', '.join(self._settings.kafka_broker_list)}")

    async def _start_clients(self) -> None:
        producer = self._producer_factory()
        consumer = self._consumer_factory()
        try:
            await producer.start()
            consumer.subscribe(pattern=rf"^{re.escape(self._namespace)}\..*")
            await consumer.start()
        except Exception:
            await _stop_quietly(consumer)
            await _stop_quietly(producer)
            raise
        self._producer = producer
        self._consumer = consumer

    async def disconnect(self) -> None:
        """Flush pending sends, stop consuming and close both clients."""
        self._connected = False

        if self._consume_task is not None:
            self._consume_task.cancel()
            try:
                await self._consume_task
            except asyncio.CancelledError:
                pass
            self._consume_task = None

        if self._producer is not None:
            try:
                await self._producer.flush()
            except KafkaError as e:
                logger.error(f"KafkaEventBus flush failed during disconnect: {e}")
            await _stop_quietly(self._producer)
            self._producer = None

        await _stop_quietly(self._consumer)
        self._consumer = None
        logger.info("KafkaEventBus disconnected")

    async def is_healthy(self) -> bool:
        if not self._connected or self._producer is None:
            return False
        return self._consume_task is not None and not self._consume_task.done()

    # -- publishing ---------------------------------------------------------

    async def publish(self, event: Event) -> None:
        """Produce one event and wait for the broker acknowledgement.

        Raises:
            NotConnectedError: If the bus is not connected
            EventEmissionError: If the broker rejects the message
        """
        if not self._connected:
            raise NotConnectedError("KafkaEventBus not connected")

        topic = topic_for_event(event, self._namespace)
        try:
            await self._producer.send_and_wait(topic, **build_message(event))
        except KafkaError as e:
            logger.error(f"KafkaEventBus publish of {event} to {topic} failed: {e}")
            raise EventEmissionError(f"Failed to publish {event.id} to {topic}: {e}") from e
        logger.debug(f"Published {event} to {topic}")

    async def publish_batch(self, events: list[Event]) -> None:
        """Produce several events grouped per topic and flush once.

        Raises:
            NotConnectedError: If the bus is not connected
            EventEmissionError: If any message is rejected
        """
        if not self._connected:
            raise NotConnectedError("KafkaEventBus not connected")
        if not events:
            return

        by_topic: dict[str, list[Event]] = {}
        for event in events:
            by_topic.setdefault(topic_for_event(event, self._namespace), []).append(event)

        try:
            deliveries = []
            for topic, topic_events in by_topic.items():
                for event in topic_events:
                    deliveries.append(await self._producer.send(topic, **build_message(event)))
            await self._producer.flush()
            await asyncio.gather(*deliveries)
        except KafkaError as e:
            logger.error(f"KafkaEventBus batch publish of {len(events)} events failed: {e}")
            raise EventEmissionError(f"Batch publish failed: {e}") from e
        logger.debug(f"Published batch of {len(events)} events to {len(by_topic)} topics")

    # -- consuming ----------------------------------------------------------

    async def _consume_loop(self) -> None:
        """Consume until cancelled, resuming with backoff after broker errors.

        Offsets of records dispatched before an error were not committed, so
        the group redelivers them once consumption resumes.
        """
        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=self._consumer_restart_backoff, max=30),
            retry=retry_if_exception_type(KafkaError),
            before_sleep=before_sleep_log(logger, "ERROR"),
            reraise=True,
        ):
            with attempt:
                await self._consume()

    async def _consume(self) -> None:
        async for record in self._consumer:
            await self._handle_record(record)
            await self._consumer.commit()

    async def _handle_record(self, record: ConsumerRecord) -> None:
        """Decode a consumed record and dispatch it to local handlers."""
        try:
            event = Event.from_json(record.value)
        except (ValidationError, ValueError, TypeError) as e:
            logger.error(f"KafkaEventBus dropped undecodable message from {record.topic}@{record.offset}: {e}")
            return
        await self._dispatch(event)


async def _stop_quietly(client: Any) -> None:
    if client is None:
        return
    try:
        await client.stop()
    except KafkaError as e:
        logger.warning(f"Error while stopping Kafka client: {e}")
