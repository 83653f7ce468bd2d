"""Push delivery and token health reconciliation.

Delivery of one event:

1. Look up the notification for the event type (unmapped types send nothing)
2. Resolve the recipient and their healthy devices
3. Send, then act on every ticket: "not registered" confirms the token invalid,
   another error counts a failure, an accepted ticket is stored for a receipt
   check 15 minutes later

The receipt check and the hourly revalidation of suspected tokens feed the
same state machine (see ``DeviceService``).
"""

from datetime import datetime, timedelta

from loguru import logger
from sqlmodel import Session

from moment_notify.constants import PUSH_SEND_CHUNK_SIZE
from moment_notify.database import SessionFactory, borrow_db_session, run_in_session
from moment_notify.events.notification_map import get_notification_spec, resolve_notification
from moment_notify.events.types import Event, EventPriority
from moment_notify.exceptions import PermanentTargetError, TransientDeliveryError
from moment_notify.models.base_model import PushTicketStatus
from moment_notify.models.db_model import Device, PushTicket
from moment_notify.push.expo_client import DeliveryStatus, ExpoPushClient, PushMessage, PushReceiptResult, PushTicketResult, chunked
from moment_notify.services.device_service import DeviceService, get_device_service
from moment_notify.services.push_ticket_service import PushTicketService, get_push_ticket_service
from moment_notify.utils.clock import utc_now

# Receipts are kept by the provider for a day; older tickets can no longer be reconciled
RECEIPT_AVAILABILITY = timedelta(hours=24)

VALIDATION_DATA = {"type": "token_validation"}


class PushDeliveryService:
    """Sends push notifications and keeps device token health up to date."""

    def __init__(
        self,
        client: ExpoPushClient,
        session_factory: SessionFactory = borrow_db_session,
        device_service: DeviceService | None = None,
        push_ticket_service: PushTicketService | None = None,
    ) -> None:
        self._client = client
        self._session_factory = session_factory
        self._devices = device_service or get_device_service()
        self._tickets = push_ticket_service or get_push_ticket_service()

    async def deliver_event(self, event: Event) -> int:
        """Push the notification for ``event`` to its recipient's devices.

        Messages go out in provider-sized chunks; a chunk that cannot be sent
        counts a failure only on the tokens it carried.

        Returns:
            Number of messages accepted by the provider
        """
        resolved = resolve_notification(event)
        if resolved is None:
            logger.trace(f"No push notification for {event}")
            return 0

        user_id, notification = resolved
        spec = get_notification_spec(event.type)

        devices, badge = await run_in_session(lambda session: self._recipient_devices(session, user_id), self._session_factory)
        if not devices:
            logger.debug(f"No healthy devices for user {user_id}, skipping push for {event}")
            return 0

        priority = "high" if event.metadata.priority >= EventPriority.HIGH else "default"
        accepted = 0
        for batch in chunked(devices, PUSH_SEND_CHUNK_SIZE):
            messages = [
                PushMessage(
                    to=device.push_token,
                    title=notification.title,
                    body=notification.body,
                    data=notification.data,
                    badge=badge,
                    priority=priority,
                    channel_id=spec.channel_id if spec else None,
                )
                for device in batch
            ]
            try:
                tickets = await self._client.send(messages)
            except TransientDeliveryError as e:
                logger.warning(f"Push send for {event} failed, counting a failure on {len(batch)} tokens: {e}")
                await run_in_session(lambda session: self._record_transport_failure(session, batch), self._session_factory)
                continue
            accepted += await run_in_session(lambda session: self._apply_tickets(session, batch, tickets), self._session_factory)

        logger.info(f"Push for {event.type.value} to user {user_id}: {accepted}/{len(devices)} accepted")
        return accepted

    def _recipient_devices(self, session: Session, user_id: str) -> tuple[list[Device], int]:
        devices = self._devices.get_healthy_devices_for_user(session, user_id)
        if not devices:
            return [], 0
        return devices, self._devices.get_unread_notification_count(session, user_id)

    def _record_transport_failure(self, session: Session, devices: list[Device]) -> None:
        for device in devices:
            self._devices.increment_failure_count(session, device.push_token)

    def _record_result(self, session: Session, push_token: str, result: PushTicketResult | PushReceiptResult) -> DeliveryStatus:
        """Move the token along the health state machine according to one provider result."""
        try:
            result.raise_for_status(push_token)
        except PermanentTargetError as e:
            self._devices.mark_token_as_invalid(session, e.target, e.reason)
            return DeliveryStatus.PERMANENT_INVALID
        except TransientDeliveryError as e:
            logger.warning(f"Push to {e.target} failed: {e}")
            self._devices.increment_failure_count(session, push_token)
            return DeliveryStatus.ERROR
        return DeliveryStatus.OK

    def _apply_tickets(self, session: Session, devices: list[Device], tickets: list[PushTicketResult]) -> int:
        """Update token health from send tickets and store accepted ones for the receipt check."""
        accepted: list[tuple[str, str, str | None]] = []
        for device, ticket in zip(devices, tickets, strict=True):
            if self._record_result(session, device.push_token, ticket) is DeliveryStatus.OK and ticket.id:
                accepted.append((ticket.id, device.push_token, device.user_id))
        if accepted:
            self._tickets.record_tickets(session, accepted)
        return len(accepted)

    async def check_receipts(self) -> dict[str, int]:
        """Reconcile stored tickets whose receipt check is due.

        Returns:
            Count of tickets per outcome
        """
        now = utc_now()
        due = await run_in_session(lambda session: self._tickets.get_due(session, now), self._session_factory)
        if not due:
            return {}

        receipts = await self._client.get_receipts([ticket.id for ticket in due])
        outcome = await run_in_session(lambda session: self._reconcile_receipts(session, due, receipts, now), self._session_factory)

        logger.info(f"Push receipt check over {len(due)} tickets: {outcome}")
        return outcome

    def _reconcile_receipts(
        self, session: Session, due: list[PushTicket], receipts: dict[str, PushReceiptResult], now: datetime
    ) -> dict[str, int]:
        outcome = {"ok": 0, "invalid": 0, "error": 0, "unavailable": 0, "waiting": 0}
        for ticket in due:
            receipt = receipts.get(ticket.id)
            if receipt is None:
                if now - ticket.created_at > RECEIPT_AVAILABILITY:
                    self._tickets.mark_checked(session, ticket.id, PushTicketStatus.ERROR, "receipt unavailable")
                    outcome["unavailable"] += 1
                else:
                    outcome["waiting"] += 1
                continue

            match self._record_result(session, ticket.push_token, receipt):
                case DeliveryStatus.OK:
                    self._tickets.mark_checked(session, ticket.id, PushTicketStatus.OK)
                    outcome["ok"] += 1
                case DeliveryStatus.PERMANENT_INVALID:
                    self._tickets.mark_checked(session, ticket.id, PushTicketStatus.INVALID, receipt.error_code)
                    outcome["invalid"] += 1
                case DeliveryStatus.ERROR:
                    self._tickets.mark_checked(session, ticket.id, PushTicketStatus.ERROR, receipt.error_code or receipt.message)
                    outcome["error"] += 1
        return outcome

    async def revalidate_suspected_devices(self) -> dict[str, int]:
        """Send a silent validation push to suspected tokens and move them along the state machine.

        A transport failure of a chunk says nothing about its tokens and
        leaves them untouched until the next run.

        Returns:
            Count of devices per outcome
        """
        devices = await run_in_session(self._devices.get_suspected_invalid_devices, self._session_factory)
        if not devices:
            return {}

        outcome = {"restored": 0, "invalid": 0, "error": 0}
        for batch in chunked(devices, PUSH_SEND_CHUNK_SIZE):
            messages = [
                PushMessage(to=device.push_token, data=VALIDATION_DATA, sound=None, priority="normal", content_available=True)
                for device in batch
            ]
            try:
                tickets = await self._client.send(messages)
            except TransientDeliveryError as e:
                logger.warning(f"Token revalidation push failed for {len(batch)} tokens, retrying next run: {e}")
                continue
            await run_in_session(lambda session: self._apply_validation(session, batch, tickets, outcome), self._session_factory)

        logger.info(f"Token revalidation over {len(devices)} devices: {outcome}")
        return outcome

    def _apply_validation(
        self, session: Session, devices: list[Device], tickets: list[PushTicketResult], outcome: dict[str, int]
    ) -> None:
        accepted: list[tuple[str, str, str | None]] = []
        for device, ticket in zip(devices, tickets, strict=True):
            match self._record_result(session, device.push_token, ticket):
                case DeliveryStatus.OK:
                    self._devices.mark_token_as_active(session, device.id)
                    if ticket.id:
                        accepted.append((ticket.id, device.push_token, device.user_id))
                    outcome["restored"] += 1
                case DeliveryStatus.PERMANENT_INVALID:
                    outcome["invalid"] += 1
                case DeliveryStatus.ERROR:
                    outcome["error"] += 1
        if accepted:
            self._tickets.record_tickets(session, accepted)
