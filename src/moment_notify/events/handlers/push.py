"""Mobile push subscriber."""

from loguru import logger

from moment_notify.event_bus.core import EventHandler
from moment_notify.events.types import Event
from moment_notify.services.push_delivery_service import PushDeliveryService


class PushNotificationHandler(EventHandler):
    def __init__(self, delivery: PushDeliveryService):
        self._delivery = delivery

    async def handle(self, event: Event) -> None:
        try:
            await self._delivery.deliver_event(event)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Push delivery for {event} failed: {e!r}")
