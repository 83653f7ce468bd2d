"""Service for push tickets awaiting receipt reconciliation.

Accepted tickets are stored with a ``check_after`` time so that a restart
between send and receipt check does not drop the reconciliation.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from functools import lru_cache

from sqlalchemy import delete, update
from sqlmodel import Session, select

from moment_notify.constants import RECEIPT_CHECK_BATCH_SIZE, RECEIPT_CHECK_DELAY_MINUTES
from moment_notify.models.base_model import PushTicketStatus
from moment_notify.models.db_model import PushTicket
from moment_notify.utils.clock import utc_now

# Width of the ``push_tickets.error`` column
ERROR_MAX_LENGTH = 255


class PushTicketService:
    """Service for push ticket operations."""

    def record_tickets(self, session: Session, tickets: Iterable[tuple[str, str, str | None]]) -> int:
        """Store accepted tickets as ``(ticket_id, push_token, user_id)`` triples.

        Returns:
            Number of tickets stored
        """
        now = utc_now()
        check_after = now + timedelta(minutes=RECEIPT_CHECK_DELAY_MINUTES)
        count = 0
        for ticket_id, push_token, user_id in tickets:
            session.add(
                PushTicket(
                    id=ticket_id,
                    push_token=push_token,
                    user_id=user_id,
                    status=PushTicketStatus.PENDING.value,
                    created_at=now,
                    check_after=check_after,
                )
            )
            count += 1
        session.commit()
        return count

    def get_due(self, session: Session, now: datetime | None = None, limit: int = RECEIPT_CHECK_BATCH_SIZE) -> list[PushTicket]:
        """Pending tickets whose receipt check is due, oldest first."""
        stmt = (
            select(PushTicket)
            .where(PushTicket.status == PushTicketStatus.PENDING.value, PushTicket.check_after <= (now or utc_now()))
            .order_by(PushTicket.check_after)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def mark_checked(self, session: Session, ticket_id: str, status: PushTicketStatus, error: str | None = None) -> None:
        stmt = (
            update(PushTicket)
            .where(PushTicket.id == ticket_id)
            .values(status=status.value, error=error[:ERROR_MAX_LENGTH] if error else error, checked_at=utc_now())
        )
        session.execute(stmt)
        session.commit()

    def delete_checked_older_than(self, session: Session, cutoff: datetime) -> int:
        """Purge reconciled tickets created before ``cutoff``."""
        stmt = delete(PushTicket).where(PushTicket.status != PushTicketStatus.PENDING.value, PushTicket.created_at < cutoff)
        rows = session.execute(stmt).rowcount
        session.commit()
        return rows


@lru_cache
def get_push_ticket_service() -> PushTicketService:
    """Get the push ticket service singleton."""
    return PushTicketService()
