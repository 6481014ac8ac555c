from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from reservation_sync.models.enums import EmailStatus, EmailType
from reservation_sync.models.scheduled_emails import ScheduledEmail
from reservation_sync.utils.datetime import ensure_utc


def _to_record(row: Any) -> dict[str, Any]:
    record = dict(row)
    record["email_type"] = EmailType(record["email_type"])
    record["status"] = EmailStatus(record["status"])
    for field in ("scheduled_at", "sent_at", "claimed_until", "created_at", "updated_at"):
        if record.get(field) is not None:
            record[field] = ensure_utc(record[field])
    return record


def get_scheduled_email(conn: Connection, email_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch one scheduled email row.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        email_id (str): ScheduledEmail ID.

    Returns:
        Optional[dict[str, Any]]: Row dict with enum-typed fields, or None.
    """
    row = (
        conn.execute(select(ScheduledEmail.__table__).where(ScheduledEmail.id == email_id))
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def list_emails_for_reservation(conn: Connection, reservation_id: str) -> list[dict[str, Any]]:
    """All rows for a reservation, oldest first (audit trail included)."""
    rows = (
        conn.execute(
            select(ScheduledEmail.__table__)
            .where(ScheduledEmail.reservation_id == reservation_id)
            .order_by(ScheduledEmail.scheduled_at, ScheduledEmail.created_at)
        )
        .mappings()
        .all()
    )
    return [_to_record(row) for row in rows]


def find_blocking_email(
    conn: Connection, reservation_id: str, email_type: EmailType
) -> Optional[dict[str, Any]]:
    """
    Return a row that makes scheduling ``email_type`` a no-op, if any.

    A pending row blocks by definition. Sent and failed rows block too: both are
    terminal and re-scheduling them would risk a duplicate guest message.
    Skipped rows do not block, so a date change can schedule afresh.
    """
    row = (
        conn.execute(
            select(ScheduledEmail.__table__)
            .where(ScheduledEmail.reservation_id == reservation_id)
            .where(ScheduledEmail.email_type == email_type.value)
            .where(
                ScheduledEmail.status.in_(
                    [EmailStatus.SCHEDULED.value, EmailStatus.SENT.value, EmailStatus.FAILED.value]
                )
            )
            .limit(1)
        )
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def list_due_emails(conn: Connection, now: datetime, limit: int) -> list[dict[str, Any]]:
    """
    Return up to ``limit`` scheduled rows due at ``now`` and not leased by another tick.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        now (datetime): Aware UTC cut-off.
        limit (int): Batch bound.

    Returns:
        list[dict[str, Any]]: Oldest-due first.
    """
    rows = (
        conn.execute(
            select(ScheduledEmail.__table__)
            .where(ScheduledEmail.status == EmailStatus.SCHEDULED.value)
            .where(ScheduledEmail.scheduled_at <= now)
            .where(
                or_(ScheduledEmail.claimed_until.is_(None), ScheduledEmail.claimed_until <= now)
            )
            .order_by(ScheduledEmail.scheduled_at)
            .limit(limit)
        )
        .mappings()
        .all()
    )
    return [_to_record(row) for row in rows]
