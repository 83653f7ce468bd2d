"""
Device API - push token registration for the mobile client.

This module provides REST endpoints for the authenticated user's devices:
- Registration: Create or refresh a device and its push token
- Listing: All devices of the user with their token health
- Deactivation: Stop delivering to one device
- Activity: Mark a token as recently seen

All endpoints delegate to DeviceService for business logic.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlmodel import Session

from moment_notify.api.dependencies import get_current_user_id
from moment_notify.database import get_db_session
from moment_notify.models.api_model import DeviceActivityInput, DeviceRegistrationInput, DeviceResponse
from moment_notify.services.device_service import DeviceService, get_device_service

router = APIRouter()


@router.post("/devices/register", response_model=DeviceResponse, response_model_by_alias=True)
def register_device(
    registration: DeviceRegistrationInput,
    user_id: str = Depends(get_current_user_id),
    device_service: DeviceService = Depends(get_device_service),
    session: Session = Depends(get_db_session),
) -> DeviceResponse:
    """Register a device or refresh its push token.

    Re-registration resets the token health: the device becomes active with
    no recorded failures.

    Args:
        registration: Device details sent by the client
        user_id: Authenticated user
        device_service: Device service instance
        session: Database session

    Returns:
        The registered device
    """
    device = device_service.register_or_update(
        session,
        user_id=user_id,
        device_id=registration.device_id,
        platform=registration.platform.value,
        app_version=registration.app_version,
        push_token=registration.push_token,
        expo_version=registration.expo_version,
    )
    logger.info(f"Registered device {registration.device_id} ({registration.platform.value}) for user {user_id}")
    return DeviceResponse.model_validate(device)


@router.get("/devices", response_model=list[DeviceResponse], response_model_by_alias=True)
def list_devices(
    user_id: str = Depends(get_current_user_id),
    device_service: DeviceService = Depends(get_device_service),
    session: Session = Depends(get_db_session),
) -> list[DeviceResponse]:
    """List the devices of the authenticated user, most recently seen first."""
    return [DeviceResponse.model_validate(device) for device in device_service.list_devices_for_user(session, user_id)]


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_device(
    device_id: str,
    user_id: str = Depends(get_current_user_id),
    device_service: DeviceService = Depends(get_device_service),
    session: Session = Depends(get_db_session),
) -> None:
    """Deactivate one of the user's devices.

    Args:
        device_id: Client-side device identifier
        user_id: Authenticated user
        device_service: Device service instance
        session: Database session

    Raises:
        HTTPException: If the user has no such device
    """
    if not device_service.deactivate_device(session, user_id, device_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Device {device_id} not found",
        )


@router.post("/devices/activity", status_code=status.HTTP_204_NO_CONTENT)
def record_device_activity(
    activity: DeviceActivityInput,
    _user_id: str = Depends(get_current_user_id),
    device_service: DeviceService = Depends(get_device_service),
    session: Session = Depends(get_db_session),
) -> None:
    """Mark the device holding a push token as seen now."""
    device_service.update_device_last_seen(session, activity.push_token)
