"""Notification core lifecycle.

``EventSystem`` is constructed once at startup and owns the bus, the socket
connection registry, the push client and the publisher. ``init`` connects the
bus and wires the subscribers; ``shutdown`` releases everything in reverse.

Subscriptions made by ``init``:

| subscriber | subscribed to |
|---|---|
| ``EventStoreWriter`` | ``"*"`` |
| ``NotificationWriter`` | persisted notification types |
| ``PushNotificationHandler`` | every type with a notification (when push is enabled) |
| ``WebSocketEventHandler`` | every socket-routed type |
"""

import httpx
from loguru import logger

from moment_notify.database import SessionFactory, borrow_db_session
from moment_notify.event_bus.core import WILDCARD, EventBus
from moment_notify.event_bus.factory import create_event_bus
from moment_notify.event_bus.tasks import drain_detached
from moment_notify.events.handlers import EventStoreWriter, NotificationWriter, PushNotificationHandler, WebSocketEventHandler
from moment_notify.events.handlers.notifications import PERSISTED_TYPES
from moment_notify.events.notification_map import NOTIFICATION_SPECS
from moment_notify.events.publisher import EventPublisher
from moment_notify.jobs.scheduled_events import ScheduledEventSweeper
from moment_notify.push.expo_client import ExpoPushClient
from moment_notify.services.push_delivery_service import PushDeliveryService
from moment_notify.settings import Settings, get_settings
from moment_notify.websocket.connection_registry import ConnectionRegistry
from moment_notify.websocket.router import SOCKET_ROUTES, WebSocketRouter


class EventSystem:
    """Explicit lifecycle object for the notification core."""

    def __init__(
        self,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        session_factory: SessionFactory = borrow_db_session,
        push_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.bus = bus or create_event_bus(self.settings)
        self.session_factory = session_factory
        self.connections = ConnectionRegistry()
        self.router = WebSocketRouter(self.connections)
        self.publisher = EventPublisher(self.bus, session_factory=session_factory)
        self.sweeper = ScheduledEventSweeper(self.bus, session_factory=session_factory)

        self.push_client: ExpoPushClient | None = None
        self.delivery: PushDeliveryService | None = None
        if self.settings.push_enabled:
            self.push_client = ExpoPushClient.from_settings(self.settings, transport=push_transport)
            self.delivery = PushDeliveryService(self.push_client, session_factory=session_factory)

        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Connect the bus and register every subscriber."""
        if self._initialized:
            return

        await self.bus.connect()

        await self.bus.subscribe_to_pattern(WILDCARD, EventStoreWriter(self.session_factory))

        notification_writer = NotificationWriter(self.session_factory)
        for event_type in PERSISTED_TYPES:
            await self.bus.subscribe(event_type, notification_writer)

        if self.delivery is not None:
            push_handler = PushNotificationHandler(self.delivery)
            for event_type in NOTIFICATION_SPECS:
                await self.bus.subscribe(event_type, push_handler)
        else:
            logger.info("Push delivery disabled (MOMENT_NOTIFY_PUSH_ENABLED=false)")

        socket_handler = WebSocketEventHandler(self.router)
        for event_type in SOCKET_ROUTES:
            await self.bus.subscribe(event_type, socket_handler)

        self._initialized = True
        logger.info(f"Event system initialized with {type(self.bus).__name__}, handlers for {len(self.bus.get_registered_event_types())} types")

    async def shutdown(self) -> None:
        """Wait for detached work, disconnect the bus and close the push client."""
        if not self._initialized:
            return

        await drain_detached()
        await self.bus.disconnect()
        if self.push_client is not None:
            await self.push_client.aclose()
        self._initialized = False
        logger.info("Event system shut down")

    async def is_healthy(self) -> bool:
        return self._initialized and await self.bus.is_healthy()
