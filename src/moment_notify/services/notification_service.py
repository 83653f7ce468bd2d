"""Service for in-app notification records."""

from datetime import datetime
from functools import lru_cache
from typing import Any

from loguru import logger
from sqlalchemy import delete, func
from sqlmodel import Session, select

from moment_notify.exceptions import ResourceNotFoundError
from moment_notify.models.db_model import Notification
from moment_notify.utils.clock import utc_now


class NotificationService:
    """Service for notification-related operations."""

    def create_notification(
        self,
        session: Session,
        user_id: str,
        type_: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> Notification:
        """Persist a notification that has been delivered to the user's channels.

        Args:
            session: Database session
            user_id: Recipient
            type_: Event type the notification was derived from
            title: Notification title
            body: Notification body
            data: Structured data for client-side navigation
            created_at: Occurrence time, defaults to now

        Returns:
            The stored notification
        """
        now = utc_now()
        notification = Notification(
            user_id=str(user_id),
            type=type_,
            title=title,
            body=body,
            data=data or {},
            is_read=False,
            is_delivered=True,
            delivered_at=now,
            created_at=created_at or now,
            updated_at=created_at or now,
        )
        session.add(notification)
        session.commit()
        session.refresh(notification)
        logger.debug(f"Service: create_notification - {type_} for user {user_id} (id={notification.id})")
        return notification

    def list_for_user(self, session: Session, user_id: str, page: int = 1, limit: int = 20) -> tuple[list[Notification], int]:
        """A page of a user's notifications, newest first, with the total count."""
        user_id = str(user_id)
        total = session.exec(select(func.count()).select_from(Notification).where(Notification.user_id == user_id)).one()
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(session.exec(stmt).all()), total

    def mark_as_read(self, session: Session, user_id: str, id_: int) -> Notification:
        """Mark one of the user's notifications as read.

        Raises:
            ResourceNotFoundError: If the user has no notification with that id
        """
        notification = session.exec(select(Notification).where(Notification.id == id_, Notification.user_id == str(user_id))).first()
        if notification is None:
            raise ResourceNotFoundError("Notification", id_)

        if not notification.is_read:
            now = utc_now()
            notification.is_read = True
            notification.read_at = now
            notification.updated_at = now
            session.add(notification)
            session.commit()
            session.refresh(notification)
        return notification

    def delete_older_than(self, session: Session, cutoff: datetime) -> int:
        """Purge notifications created before ``cutoff``."""
        rows = session.execute(delete(Notification).where(Notification.created_at < cutoff)).rowcount
        session.commit()
        return rows


@lru_cache
def get_notification_service() -> NotificationService:
    """Get the notification service singleton."""
    return NotificationService()
