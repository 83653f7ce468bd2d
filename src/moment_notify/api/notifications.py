"""
Notification API - the user's in-app notification feed.

All endpoints delegate to NotificationService and DeviceService for
business logic; the test endpoint goes through the event publisher.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from sqlmodel import Session

from moment_notify.api.dependencies import get_current_user_id, get_publisher
from moment_notify.database import get_db_session
from moment_notify.events.publisher import EventPublisher
from moment_notify.models.api_model import NotificationPage, NotificationResponse, UnreadCountResponse
from moment_notify.services.device_service import DeviceService, get_device_service
from moment_notify.services.notification_service import NotificationService, get_notification_service

router = APIRouter()


@router.get("/notifications", response_model=NotificationPage, response_model_by_alias=True)
def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    notification_service: NotificationService = Depends(get_notification_service),
    session: Session = Depends(get_db_session),
) -> NotificationPage:
    """Get a page of the user's notifications, newest first.

    Args:
        page: 1-based page number
        limit: Page size (at most 100)
        user_id: Authenticated user
        notification_service: Notification service instance
        session: Database session

    Returns:
        The page with the total number of notifications
    """
    items, total = notification_service.list_for_user(session, user_id, page=page, limit=limit)
    return NotificationPage(
        items=[NotificationResponse.model_validate(item) for item in items],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse, response_model_by_alias=True)
def get_unread_count(
    user_id: str = Depends(get_current_user_id),
    device_service: DeviceService = Depends(get_device_service),
    session: Session = Depends(get_db_session),
) -> UnreadCountResponse:
    """Number of unread notifications, the same value pushed as the badge."""
    return UnreadCountResponse(count=device_service.get_unread_notification_count(session, user_id))


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse, response_model_by_alias=True)
def mark_notification_read(
    notification_id: int,
    user_id: str = Depends(get_current_user_id),
    notification_service: NotificationService = Depends(get_notification_service),
    session: Session = Depends(get_db_session),
) -> NotificationResponse:
    """Mark a notification as read.

    Raises:
        ResourceNotFoundError: If the user has no such notification (mapped to 404)
    """
    return NotificationResponse.model_validate(notification_service.mark_as_read(session, user_id, notification_id))


@router.post("/notifications/test", status_code=status.HTTP_202_ACCEPTED)
async def send_test_notification(
    data: dict[str, Any] | None = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    publisher: EventPublisher = Depends(get_publisher),
) -> dict[str, bool]:
    """Publish a low priority "contact joined" event addressed to the user themself.

    Exercises every delivery channel of the user: the in-app record, push and sockets.
    """
    # the recipient fields always name the caller
    payload = {"contactName": "Test Contact", **(data or {}), "contactUserId": user_id, "contactOwnerId": user_id}
    published = await publisher.publish_safely(publisher.publish_test_event(user_id, payload))
    return {"published": published}
