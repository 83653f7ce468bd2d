"""Process-local mapping of users to their live socket connections."""

import asyncio
from typing import Any, Protocol
from uuid import uuid4

from loguru import logger


class SocketConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionRegistry:
    """``user_id -> {connection_id}`` plus the inverse lookup.

    A user may hold many connections (phone, tablet, web). The user entry is
    removed when its last connection goes away.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, SocketConnection] = {}
        self._user_connections: dict[str, set[str]] = {}
        self._connection_users: dict[str, str] = {}

    def register(self, user_id: str, socket: SocketConnection, connection_id: str | None = None) -> str:
        """Add a connection for a user and return its id."""
        connection_id = connection_id or str(uuid4())
        user_id = str(user_id)
        self._sockets[connection_id] = socket
        self._user_connections.setdefault(user_id, set()).add(connection_id)
        self._connection_users[connection_id] = user_id
        logger.debug(f"User {user_id} connected ({connection_id}), {len(self._user_connections[user_id])} connections")
        return connection_id

    def unregister(self, connection_id: str) -> None:
        """Remove a connection, pruning the user entry when it was the last one."""
        self._sockets.pop(connection_id, None)
        user_id = self._connection_users.pop(connection_id, None)
        if user_id is None:
            return
        connections = self._user_connections.get(user_id)
        if connections is not None:
            connections.discard(connection_id)
            if not connections:
                del self._user_connections[user_id]
        logger.debug(f"User {user_id} disconnected ({connection_id})")

    def connections_for(self, user_id: str) -> set[str]:
        return set(self._user_connections.get(str(user_id), ()))

    def user_for(self, connection_id: str) -> str | None:
        return self._connection_users.get(connection_id)

    def is_user_connected(self, user_id: str) -> bool:
        return str(user_id) in self._user_connections

    def connected_user_count(self) -> int:
        return len(self._user_connections)

    def connection_count(self) -> int:
        return len(self._sockets)

    async def send_to_user(self, user_id: str, event_name: str, data: dict[str, Any]) -> int:
        """Send a frame to every connection of a user.

        A user without connections is a no-op. A connection whose send fails
        is dropped.

        Returns:
            Number of connections the frame was delivered to
        """
        connection_ids = self.connections_for(user_id)
        if not connection_ids:
            return 0

        frame = {"event": event_name, "data": data}
        results = await asyncio.gather(*(self._send(connection_id, frame) for connection_id in connection_ids))
        return sum(results)

    async def _send(self, connection_id: str, frame: dict[str, Any]) -> bool:
        socket = self._sockets.get(connection_id)
        if socket is None:
            return False
        try:
            await socket.send_json(frame)
            return True
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Dropping connection {connection_id} after failed send: {e!r}")
            self.unregister(connection_id)
            return False
