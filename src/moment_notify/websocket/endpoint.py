"""Authenticated socket endpoint.

Clients connect to ``/ws`` with a bearer token in the ``Authorization``
header or the ``token`` query parameter. Frames in both directions are
``{"event": <name>, "data": <object>}``; the only client event handled is
``ping``.
"""

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from moment_notify.events.system import EventSystem
from moment_notify.services.registry import get_service_registry
from moment_notify.settings import get_settings
from moment_notify.utils.clock import iso_utc, utc_now
from moment_notify.websocket.auth import InvalidCredentialsError, decode_user_id, extract_bearer

# Application close codes live in the 4000-4999 range
CLOSE_UNAUTHORIZED = 4401
CLOSE_UNAVAILABLE = 1013

router = APIRouter()


def _error_frame(message: str) -> dict:
    return {"event": "error", "data": {"message": message}}


def _pong_frame() -> dict:
    return {"event": "pong", "data": {"status": "pong", "timestamp": iso_utc(utc_now())}}


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Register the socket for the authenticated user until it disconnects."""
    token = extract_bearer(websocket.headers.get("authorization")) or websocket.query_params.get("token")
    try:
        user_id = decode_user_id(token, get_settings())
    except InvalidCredentialsError as e:
        logger.debug(f"Rejected socket connection: {e}")
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason=str(e))
        return

    system = get_service_registry().get_optional(EventSystem)
    if system is None or not system.initialized:
        await websocket.close(code=CLOSE_UNAVAILABLE, reason="Event system not available")
        return

    await websocket.accept()
    connection_id = system.connections.register(user_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(_error_frame("Invalid JSON"))
                continue

            event_name = message.get("event") if isinstance(message, dict) else None
            if event_name == "ping":
                await websocket.send_json(_pong_frame())
            else:
                await websocket.send_json(_error_frame(f"Unknown event: {event_name}"))
    except WebSocketDisconnect:
        logger.debug(f"Socket {connection_id} of user {user_id} closed by client")
    finally:
        system.connections.unregister(connection_id)
