"""Service for device registration and push token health.

Token health degrades with failures and recovers on re-registration or a
clean revalidation push:

- registration / refresh: ``active``, failure count reset
- 3 or 4 failures: ``suspected_invalid`` (still targeted, revalidated hourly)
- 5 failures or a provider "not registered" answer: ``confirmed_invalid``, inactive
"""

from collections.abc import Iterable
from functools import lru_cache

from loguru import logger
from sqlalchemy import case, delete, func, or_, update
from sqlmodel import Session, select

from moment_notify.constants import (
    CONFIRMED_INVALID_THRESHOLD,
    DEVICE_ACTIVITY_WINDOW_DAYS,
    REVALIDATION_BATCH_SIZE,
    STALE_INVALID_TOKEN_DAYS,
    STALE_TOKEN_REFRESH_DAYS,
    SUSPECTED_INVALID_THRESHOLD,
)
from moment_notify.models.base_model import TokenStatus
from moment_notify.models.db_model import Device, Notification
from moment_notify.utils.clock import days_ago, utc_now

HEALTHY_STATUSES = (TokenStatus.ACTIVE, TokenStatus.SUSPECTED_INVALID)


class DeviceService:
    """Service for device and token operations."""

    def register_or_update(
        self,
        session: Session,
        user_id: str,
        device_id: str,
        platform: str,
        app_version: str,
        push_token: str | None = None,
        expo_version: str | None = None,
    ) -> Device:
        """Upsert a device by (user, device id) and reset its token health.

        Args:
            session: Database session
            user_id: Owner of the device
            device_id: Client-side device identifier
            platform: ``ios`` or ``android``
            app_version: Installed app version
            push_token: Provider push token, absent when the user denied notifications
            expo_version: Provider SDK version

        Returns:
            The created or updated device
        """
        now = utc_now()
        user_id = str(user_id)
        device = session.exec(select(Device).where(Device.user_id == user_id, Device.device_id == device_id)).first()

        if device is None:
            device = Device(
                user_id=user_id,
                device_id=device_id,
                platform=str(platform),
                app_version=app_version,
                expo_version=expo_version,
                push_token=push_token,
                last_seen=now,
                last_token_refresh=now,
                created_at=now,
                updated_at=now,
            )
            logger.debug(f"Service: register_or_update - new device {device_id} for user {user_id}")
        else:
            device.sqlmodel_update(
                {
                    "push_token": push_token,
                    "platform": str(platform),
                    "app_version": app_version,
                    "expo_version": expo_version,
                    "is_active": True,
                    "token_status": TokenStatus.ACTIVE.value,
                    "failure_count": 0,
                    "last_seen": now,
                    "last_token_refresh": now,
                    "updated_at": now,
                }
            )
            logger.debug(f"Service: register_or_update - refreshed device {device_id} for user {user_id}")

        session.add(device)
        session.commit()
        session.refresh(device)
        return device

    def mark_token_as_invalid(self, session: Session, push_token: str, reason: str) -> int:
        """Confirm a token as permanently invalid and deactivate its devices.

        Returns:
            Number of device rows updated
        """
        stmt = (
            update(Device)
            .where(Device.push_token == push_token)
            .values(
                token_status=TokenStatus.CONFIRMED_INVALID.value,
                is_active=False,
                failure_count=Device.failure_count + 1,
                updated_at=utc_now(),
            )
        )
        rows = session.execute(stmt).rowcount
        session.commit()
        logger.info(f"Marked token as invalid ({reason}): {push_token} ({rows} devices)")
        return rows

    def increment_failure_count(self, session: Session, push_token: str) -> tuple[int, str] | None:
        """Record one delivery failure for a token in a single atomic update.

        Concurrent failures for the same token each count: the new value is
        computed by the database, never read-modify-written here.

        Returns:
            ``(failure_count, token_status)`` after the update, or None if no device has the token
        """
        new_count = Device.failure_count + 1
        stmt = (
            update(Device)
            .where(Device.push_token == push_token)
            .values(
                failure_count=new_count,
                token_status=case(
                    (new_count >= CONFIRMED_INVALID_THRESHOLD, TokenStatus.CONFIRMED_INVALID.value),
                    (new_count >= SUSPECTED_INVALID_THRESHOLD, TokenStatus.SUSPECTED_INVALID.value),
                    else_=Device.token_status,
                ),
                is_active=case((new_count >= CONFIRMED_INVALID_THRESHOLD, False), else_=Device.is_active),
                updated_at=utc_now(),
            )
            .returning(Device.failure_count, Device.token_status)
            .execution_options(synchronize_session=False)
        )
        rows = session.execute(stmt).all()
        session.commit()

        if not rows:
            logger.debug(f"Service: increment_failure_count - no device with token {push_token}")
            return None

        failure_count, token_status = rows[0]
        logger.debug(f"Service: increment_failure_count - {push_token} now {failure_count} failures ({token_status})")
        return failure_count, token_status

    def mark_token_as_active(self, session: Session, id_: int) -> None:
        """Restore a device to full health after a clean validation push."""
        stmt = update(Device).where(Device.id == id_).values(token_status=TokenStatus.ACTIVE.value, failure_count=0, updated_at=utc_now())
        session.execute(stmt)
        session.commit()

    def get_healthy_devices_for_user(self, session: Session, user_id: str) -> list[Device]:
        """Active devices with a usable token that were seen within the activity window."""
        stmt = select(Device).where(
            Device.user_id == str(user_id),
            Device.is_active == True,  # noqa: E712
            Device.token_status.in_([status.value for status in HEALTHY_STATUSES]),
            Device.last_seen >= days_ago(DEVICE_ACTIVITY_WINDOW_DAYS),
            Device.push_token.is_not(None),
        )
        return list(session.exec(stmt).all())

    def get_suspected_invalid_devices(self, session: Session, limit: int = REVALIDATION_BATCH_SIZE) -> list[Device]:
        """Active suspected devices due for a revalidation push."""
        stmt = (
            select(Device)
            .where(
                Device.token_status == TokenStatus.SUSPECTED_INVALID.value,
                Device.is_active == True,  # noqa: E712
                Device.push_token.is_not(None),
            )
            .order_by(Device.updated_at)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def list_devices_for_user(self, session: Session, user_id: str) -> list[Device]:
        """Every device registered by a user, most recently seen first."""
        stmt = select(Device).where(Device.user_id == str(user_id)).order_by(Device.last_seen.desc())
        return list(session.exec(stmt).all())

    def remove_devices_by_tokens(self, session: Session, push_tokens: Iterable[str]) -> int:
        """Delete every device holding one of the given tokens."""
        tokens = list(push_tokens)
        if not tokens:
            return 0
        rows = session.execute(delete(Device).where(Device.push_token.in_(tokens))).rowcount
        session.commit()
        return rows

    def deactivate_device(self, session: Session, user_id: str, device_id: str) -> bool:
        """Deactivate a user's device.

        Returns:
            True if a device was deactivated, False if the user has no such device
        """
        stmt = (
            update(Device)
            .where(Device.user_id == str(user_id), Device.device_id == device_id)
            .values(is_active=False, updated_at=utc_now())
        )
        rows = session.execute(stmt).rowcount
        session.commit()
        logger.debug(f"Service: deactivate_device {device_id} for user {user_id}: {rows} rows")
        return rows > 0

    def update_device_last_seen(self, session: Session, push_token: str) -> int:
        """Touch ``last_seen`` for every device holding the token."""
        rows = session.execute(update(Device).where(Device.push_token == push_token).values(last_seen=utc_now())).rowcount
        session.commit()
        return rows

    def get_unread_notification_count(self, session: Session, user_id: str) -> int:
        """Unread notifications for a user, used as the push badge."""
        stmt = select(func.count()).select_from(Notification).where(Notification.user_id == str(user_id), Notification.is_read == False)  # noqa: E712
        return session.exec(stmt).one()

    def cleanup_stale_tokens(self, session: Session) -> int:
        """Delete devices confirmed invalid for a week or not refreshed in 90 days.

        Returns:
            Number of devices removed
        """
        stmt = delete(Device).where(
            or_(
                (Device.token_status == TokenStatus.CONFIRMED_INVALID.value) & (Device.updated_at < days_ago(STALE_INVALID_TOKEN_DAYS)),
                Device.last_token_refresh < days_ago(STALE_TOKEN_REFRESH_DAYS),
            )
        )
        rows = session.execute(stmt).rowcount
        session.commit()
        logger.info(f"Cleaned up {rows} stale device tokens")
        return rows


@lru_cache
def get_device_service() -> DeviceService:
    """Get the device service singleton.

    Returns:
        DeviceService: The singleton device service instance
    """
    return DeviceService()
