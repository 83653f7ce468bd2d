"""Event to socket routing.

Only a few event types are forwarded over sockets, each to exactly one party:

| event type | socket event | recipient |
|---|---|---|
| ``moment.request.created`` | ``moment:request`` | receiver |
| ``moment.request.approved`` / ``rejected`` | ``moment:response`` | sender |
| ``moment.deleted`` from a cancellation | ``moment:canceled`` | the other party |

A delete without ``otherUserId`` and ``momentRequestId`` is a plain delete by
the owner and is not forwarded.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from moment_notify.events.types import Event, EventType
from moment_notify.utils.clock import iso_utc
from moment_notify.websocket.connection_registry import ConnectionRegistry


def _is_cancellation(event: Event) -> bool:
    return bool(event.payload.get("otherUserId")) and bool(event.payload.get("momentRequestId"))


@dataclass(frozen=True)
class SocketRoute:
    socket_event: str
    recipient_key: str
    applies: Callable[[Event], bool] = lambda event: True


SOCKET_ROUTES: dict[EventType, SocketRoute] = {
    EventType.MOMENT_REQUEST_CREATED: SocketRoute("moment:request", "receiverId"),
    EventType.MOMENT_REQUEST_APPROVED: SocketRoute("moment:response", "senderId"),
    EventType.MOMENT_REQUEST_REJECTED: SocketRoute("moment:response", "senderId"),
    EventType.MOMENT_DELETED: SocketRoute("moment:canceled", "otherUserId", _is_cancellation),
}


def socket_payload(event: Event) -> dict[str, Any]:
    """``{eventType, **payload, timestamp}`` as sent to clients."""
    return {"eventType": event.type.value, **event.payload, "timestamp": iso_utc(event.timestamp)}


class WebSocketRouter:
    def __init__(self, connections: ConnectionRegistry):
        self.connections = connections

    def resolve(self, event: Event) -> tuple[str, str] | None:
        """Socket event name and recipient for ``event``, or None if it is not forwarded."""
        route = SOCKET_ROUTES.get(event.type)
        if route is None or not route.applies(event):
            return None
        recipient = event.payload.get(route.recipient_key)
        if recipient in (None, ""):
            logger.debug(f"{event} has no {route.recipient_key}, not forwarded")
            return None
        return route.socket_event, str(recipient)

    async def route(self, event: Event) -> int:
        """Forward ``event`` to its recipient's connections.

        Returns:
            Number of connections reached
        """
        resolved = self.resolve(event)
        if resolved is None:
            return 0

        socket_event, user_id = resolved
        sent = await self.connections.send_to_user(user_id, socket_event, socket_payload(event))
        if sent:
            logger.debug(f"Forwarded {event} as {socket_event} to user {user_id} ({sent} connections)")
        return sent
