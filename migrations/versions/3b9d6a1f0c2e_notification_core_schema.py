"""Notification core schema

Revision ID: 3b9d6a1f0c2e
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9d6a1f0c2e"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


TIMESTAMP_NOW = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    """Create the device, notification, scheduled event, event store and push ticket tables."""
    op.create_table(
        "user_devices",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("push_token", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(16), nullable=False),
        sa.Column("device_id", sa.String(255), nullable=False),
        sa.Column("app_version", sa.String(32), nullable=False),
        sa.Column("expo_version", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("token_status", sa.String(32), server_default="active", nullable=False),
        sa.Column("failure_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_seen", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("last_token_refresh", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "device_id", name="uq_user_devices_user_device"),
    )
    op.create_index("ix_user_devices_user_id", "user_devices", ["user_id"])
    op.create_index("ix_user_devices_push_token", "user_devices", ["push_token"])
    op.create_index("ix_user_devices_token_status", "user_devices", ["token_status"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("is_delivered", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "scheduled_events",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("event_data", sa.Text(), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduled_events_scheduled_for", "scheduled_events", ["scheduled_for"])
    op.create_index("ix_scheduled_events_status", "scheduled_events", ["status"])

    op.create_table(
        "event_store",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("aggregate_id", sa.String(64), nullable=False),
        sa.Column("aggregate_type", sa.String(32), nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("event_data", sa.JSON(), nullable=False),
        sa.Column("event_metadata", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_event_store_event_type", "event_store", ["event_type"])
    op.create_index("ix_event_store_aggregate_id", "event_store", ["aggregate_id"])
    op.create_index("ix_event_store_created_at", "event_store", ["created_at"])

    op.create_table(
        "push_tickets",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("push_token", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("error", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=TIMESTAMP_NOW, nullable=False),
        sa.Column("check_after", sa.DateTime(), nullable=False),
        sa.Column("checked_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_push_tickets_status", "push_tickets", ["status"])
    op.create_index("ix_push_tickets_check_after", "push_tickets", ["check_after"])


def downgrade() -> None:
    """Drop all notification core tables."""
    op.drop_table("push_tickets")
    op.drop_table("event_store")
    op.drop_table("scheduled_events")
    op.drop_table("notifications")
    op.drop_table("user_devices")
