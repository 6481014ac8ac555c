"""Create reservation core tables

Revision ID: 4b1f2c9a7d10
Revises:
Create Date: 2026-10-18 10:12:31.402217

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op  # type: ignore[attr-defined]

# revision identifiers, used by Alembic.
revision = "4b1f2c9a7d10"
down_revision = None
branch_labels = None
depends_on = None

SCHEMA = "booking"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("confirmation_number", sa.String(64), nullable=False),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("property_name", sa.String(255)),
        sa.Column("room_id", sa.String(64), nullable=False),
        sa.Column("guest_id", sa.String(64), nullable=False),
        sa.Column("guest_name", sa.String(255)),
        sa.Column("guest_email", sa.String(320)),
        sa.Column("channel_id", sa.String(64)),
        sa.Column("check_in", sa.Date, nullable=False),
        sa.Column("check_out", sa.Date, nullable=False),
        sa.Column("timezone", sa.String(64)),
        sa.Column("adults", sa.Integer, nullable=False, server_default="1"),
        sa.Column("children", sa.Integer, nullable=False, server_default="0"),
        sa.Column("infants", sa.Integer, nullable=False, server_default="0"),
        sa.Column("special_requests", sa.Text),
        sa.Column("base_rate", sa.Integer, nullable=False, server_default="0"),
        sa.Column("taxes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("fees", sa.Integer, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("status", sa.String(32), nullable=False, server_default="tentative"),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("external_sync_status", sa.String(32), nullable=False, server_default="not_synced"),
        sa.Column("confirmation_sent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("external_booking_id", sa.String(128)),
        sa.Column("pushed_at", sa.DateTime(timezone=True)),
        sa.Column("external_confirmed_at", sa.DateTime(timezone=True)),
        sa.Column("push_lease_until", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index(
        "uq_reservations_property_confirmation",
        "reservations",
        ["property_id", "confirmation_number"],
        unique=True,
        schema=SCHEMA,
    )
    op.create_index("ix_reservations_property_id", "reservations", ["property_id"], schema=SCHEMA)
    op.create_index(
        "ix_reservations_external_booking", "reservations", ["external_booking_id"], schema=SCHEMA
    )

    op.create_table(
        "scheduled_emails",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email_type", sa.String(64), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="scheduled"),
        sa.Column("error_message", sa.Text),
        sa.Column("provider_message_id", sa.String(255)),
        sa.Column("sent_at", sa.DateTime(timezone=True)),
        sa.Column("claimed_until", sa.DateTime(timezone=True)),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index(
        "uq_scheduled_emails_pending",
        "scheduled_emails",
        ["reservation_id", "email_type"],
        unique=True,
        schema=SCHEMA,
        postgresql_where=sa.text("status = 'scheduled'"),
    )
    op.create_index(
        "ix_scheduled_emails_due", "scheduled_emails", ["status", "scheduled_at"], schema=SCHEMA
    )
    op.create_index(
        "ix_scheduled_emails_reservation_id", "scheduled_emails", ["reservation_id"], schema=SCHEMA
    )

    op.create_table(
        "external_connections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("property_id", sa.String(64), nullable=False),
        sa.Column("system_type", sa.String(32), nullable=False, server_default="octorate"),
        sa.Column("external_accommodation_id", sa.String(128), nullable=False),
        sa.Column("access_token", sa.Text),
        sa.Column("refresh_token", sa.Text),
        sa.Column("token_expires_at", sa.DateTime(timezone=True)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_connected", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        schema=SCHEMA,
    )
    op.create_index(
        "uq_external_connections_active",
        "external_connections",
        ["property_id", "system_type"],
        unique=True,
        schema=SCHEMA,
        postgresql_where=sa.text("is_active AND is_connected"),
    )
    op.create_index(
        "ix_external_connections_property_id", "external_connections", ["property_id"], schema=SCHEMA
    )
    op.create_index(
        "ix_external_connections_accommodation",
        "external_connections",
        ["external_accommodation_id"],
        schema=SCHEMA,
    )

    op.create_table(
        "external_room_mappings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "connection_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.external_connections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("room_id", sa.String(64), nullable=False),
        sa.Column("external_room_id", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "uq_room_mappings_connection_room",
        "external_room_mappings",
        ["connection_id", "room_id"],
        unique=True,
        schema=SCHEMA,
    )

    op.create_table(
        "issue_reports",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "reservation_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("issue_type", sa.String(64), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(32), nullable=False, server_default="open"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_issue_reports_reservation_id", "issue_reports", ["reservation_id"], schema=SCHEMA
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "connection_id",
            sa.String(36),
            sa.ForeignKey(f"{SCHEMA}.external_connections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        schema=SCHEMA,
    )
    op.create_index(
        "ix_webhook_events_connection_id", "webhook_events", ["connection_id"], schema=SCHEMA
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("webhook_events", schema=SCHEMA)
    op.drop_table("issue_reports", schema=SCHEMA)
    op.drop_table("external_room_mappings", schema=SCHEMA)
    op.drop_table("external_connections", schema=SCHEMA)
    op.drop_table("scheduled_emails", schema=SCHEMA)
    op.drop_table("reservations", schema=SCHEMA)
