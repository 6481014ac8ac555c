import uuid
from datetime import datetime

import structlog
from sqlalchemy import insert, or_, update
from sqlalchemy.engine import Connection

from reservation_sync.models.enums import EmailStatus, EmailType
from reservation_sync.models.scheduled_emails import ScheduledEmail

logger = structlog.get_logger(__name__)


def insert_scheduled_email(
    conn: Connection,
    reservation_id: str,
    email_type: EmailType,
    scheduled_at: datetime,
    now: datetime,
) -> str:
    """
    Insert one ``scheduled`` row.

    The partial unique index raises IntegrityError if a concurrent scheduler
    already inserted the same (reservation, email type) pair; callers treat that
    as the idempotent no-op.

    Returns:
        str: The new row ID.
    """
    email_id = str(uuid.uuid4())
    conn.execute(
        insert(ScheduledEmail).values(
            id=email_id,
            reservation_id=reservation_id,
            email_type=email_type.value,
            scheduled_at=scheduled_at,
            status=EmailStatus.SCHEDULED.value,
            created_at=now,
            updated_at=now,
        )
    )
    return email_id


def claim_email(conn: Connection, email_id: str, now: datetime, lease_until: datetime) -> bool:
    """
    Lease a scheduled row for execution.

    Returns:
        bool: False if the row is no longer scheduled or another tick holds the lease.
    """
    result = conn.execute(
        update(ScheduledEmail)
        .where(ScheduledEmail.id == email_id)
        .where(ScheduledEmail.status == EmailStatus.SCHEDULED.value)
        .where(or_(ScheduledEmail.claimed_until.is_(None), ScheduledEmail.claimed_until <= now))
        .values(claimed_until=lease_until, updated_at=now)
    )
    return result.rowcount == 1


def _finish(conn: Connection, email_id: str, now: datetime, **values: object) -> bool:
    result = conn.execute(
        update(ScheduledEmail)
        .where(ScheduledEmail.id == email_id)
        .where(ScheduledEmail.status == EmailStatus.SCHEDULED.value)
        .values(claimed_until=None, updated_at=now, **values)
    )
    if result.rowcount != 1:
        logger.warning("scheduled_email_already_finished", email_id=email_id)
        return False
    return True


def mark_email_sent(
    conn: Connection, email_id: str, now: datetime, provider_message_id: str | None
) -> bool:
    return _finish(
        conn,
        email_id,
        now,
        status=EmailStatus.SENT.value,
        sent_at=now,
        provider_message_id=provider_message_id,
    )


def mark_email_skipped(conn: Connection, email_id: str, now: datetime, reason: str) -> bool:
    return _finish(conn, email_id, now, status=EmailStatus.SKIPPED.value, error_message=reason)


def mark_email_failed(conn: Connection, email_id: str, now: datetime, error: str) -> bool:
    return _finish(conn, email_id, now, status=EmailStatus.FAILED.value, error_message=error)


def skip_pending_emails(
    conn: Connection, reservation_id: str, now: datetime, reason: str
) -> int:
    """
    Flip every still-``scheduled`` row of a reservation to ``skipped``.

    Returns:
        int: Number of rows skipped.
    """
    result = conn.execute(
        update(ScheduledEmail)
        .where(ScheduledEmail.reservation_id == reservation_id)
        .where(ScheduledEmail.status == EmailStatus.SCHEDULED.value)
        .values(
            status=EmailStatus.SKIPPED.value,
            error_message=reason,
            claimed_until=None,
            updated_at=now,
        )
    )
    return int(result.rowcount)
