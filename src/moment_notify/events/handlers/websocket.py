"""Real-time socket subscriber."""

from loguru import logger

from moment_notify.event_bus.core import EventHandler
from moment_notify.events.types import Event
from moment_notify.websocket.router import WebSocketRouter


class WebSocketEventHandler(EventHandler):
    """Forwards routable events to the recipient's live socket connections."""

    def __init__(self, router: WebSocketRouter):
        self._router = router

    async def handle(self, event: Event) -> int:
        try:
            return await self._router.route(event)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Socket routing for {event} failed: {e!r}")
            return 0
