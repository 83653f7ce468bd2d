"""API dependencies for FastAPI endpoints."""

from fastapi import Depends, Header, HTTPException, status

from moment_notify.events.publisher import EventPublisher
from moment_notify.events.system import EventSystem
from moment_notify.services.registry import get_service_registry
from moment_notify.settings import Settings, get_settings
from moment_notify.websocket.auth import InvalidCredentialsError, decode_user_id, extract_bearer


def get_event_system() -> EventSystem:
    """The running event system.

    Raises:
        HTTPException: 503 while the event system is not initialized
    """
    system = get_service_registry().get_optional(EventSystem)
    if system is None or not system.initialized:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Event system not available")
    return system


def get_publisher(system: EventSystem = Depends(get_event_system)) -> EventPublisher:
    return system.publisher


def get_current_user_id(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """User id from the bearer token of the request.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    try:
        return decode_user_id(extract_bearer(authorization), settings)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
