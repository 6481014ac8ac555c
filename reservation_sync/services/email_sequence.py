"""
Follow-up email sequence: when each email fires, and whether it is sent.

Scheduling persists one ``scheduled`` row per (reservation, email type).
Execution runs from the scheduler runner: it leases the row, re-reads the
reservation, applies the skip rules and only then renders and sends. Every
outcome is written back to the row; rows are never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Optional

import structlog
from jinja2 import TemplateError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from reservation_sync.config import (
    EMAIL_CLAIM_LEASE_SECONDS,
    FOLLOWUP_DELAY_DAYS,
    SEQUENCE_SEND_HOUR,
)
from reservation_sync.db.readers.issue_reports import has_open_issue
from reservation_sync.db.readers.reservations import get_reservation
from reservation_sync.db.readers.scheduled_emails import find_blocking_email, get_scheduled_email
from reservation_sync.db.writers.scheduled_emails import (
    claim_email,
    insert_scheduled_email,
    mark_email_failed,
    mark_email_sent,
    mark_email_skipped,
    skip_pending_emails,
)
from reservation_sync.exceptions import ReservationNotFound, SendFailure
from reservation_sync.metrics import emails_processed, emails_scheduled
from reservation_sync.models.enums import EmailStatus, EmailType, ReservationStatus
from reservation_sync.services.email_templates import render_email
from reservation_sync.services.notifications import NotificationSender
from reservation_sync.utils.datetime import (
    at_local_hour,
    days_until,
    local_midnight,
    property_zone,
    utc_now,
)

logger = structlog.get_logger(__name__)

SCHEDULABLE_STATUSES = frozenset({ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED})
ISSUE_REPORTED = "issue reported"


class ExecutionOutcome(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
    ALREADY_PROCESSED = "already_processed"


def _followup_fire_at(reservation: dict[str, Any]) -> Optional[datetime]:
    # Never applicable when check-in is too close to the booking date.
    zone = property_zone(reservation.get("timezone"))
    created_at = reservation["created_at"]
    check_in_start = local_midnight(reservation["check_in"], zone)
    if days_until(created_at, check_in_start) <= FOLLOWUP_DELAY_DAYS:
        return None
    booked_on = created_at.astimezone(zone).date()
    return at_local_hour(booked_on + timedelta(days=FOLLOWUP_DELAY_DAYS), SEQUENCE_SEND_HOUR, zone)


def _checkin_fire_at(reservation: dict[str, Any]) -> Optional[datetime]:
    zone = property_zone(reservation.get("timezone"))
    return at_local_hour(reservation["check_in"] + timedelta(days=1), SEQUENCE_SEND_HOUR, zone)


def _checkout_fire_at(reservation: dict[str, Any]) -> Optional[datetime]:
    zone = property_zone(reservation.get("timezone"))
    return at_local_hour(reservation["check_out"] + timedelta(days=1), SEQUENCE_SEND_HOUR, zone)


@dataclass(frozen=True)
class EmailRule:
    """
    Per-type policy shared by scheduling and execution.

    Attributes:
        fire_at: Absolute UTC send time, or None when the email does not apply.
        sendable_statuses: Reservation statuses in which the email may still go out.
        skip_on_open_issue: Suppress the email while the guest has an open issue report.
    """

    email_type: EmailType
    fire_at: Callable[[dict[str, Any]], Optional[datetime]]
    sendable_statuses: frozenset[ReservationStatus]
    skip_on_open_issue: bool


EMAIL_RULES: dict[EmailType, EmailRule] = {
    EmailType.POST_BOOKING_FOLLOWUP: EmailRule(
        email_type=EmailType.POST_BOOKING_FOLLOWUP,
        fire_at=_followup_fire_at,
        sendable_statuses=frozenset({ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED}),
        skip_on_open_issue=False,
    ),
    EmailType.POST_CHECKIN: EmailRule(
        email_type=EmailType.POST_CHECKIN,
        fire_at=_checkin_fire_at,
        sendable_statuses=frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN}),
        skip_on_open_issue=True,
    ),
    EmailType.POST_CHECKOUT: EmailRule(
        email_type=EmailType.POST_CHECKOUT,
        fire_at=_checkout_fire_at,
        sendable_statuses=frozenset(
            {
                ReservationStatus.CONFIRMED,
                ReservationStatus.CHECKED_IN,
                ReservationStatus.CHECKED_OUT,
            }
        ),
        skip_on_open_issue=True,
    ),
}


def compute_schedule(reservation: dict[str, Any]) -> dict[EmailType, datetime]:
    """
    Compute the absolute send time of every applicable email for a reservation.

    Example:
        Created 2025-06-01T09:00Z, check-in 2025-06-10, check-out 2025-06-12 in
        Europe/Bucharest gives the follow-up at 2025-06-04 10:00 local,
        post-checkin at 2025-06-11 10:00 local and post-checkout at
        2025-06-13 10:00 local.
    """
    schedule = {}
    for email_type, rule in EMAIL_RULES.items():
        fire_at = rule.fire_at(reservation)
        if fire_at is not None:
            schedule[email_type] = fire_at
    return schedule


def schedule_for_reservation(
    engine: Engine, reservation_id: str, now: Optional[datetime] = None
) -> list[str]:
    """
    Persist the follow-up sequence for a reservation.

    Idempotent: a type that already has a scheduled, sent or failed row is left
    alone, and a concurrent insert losing the unique-index race counts as done.

    Args:
        engine (Engine): SQLAlchemy engine.
        reservation_id (str): Internal reservation ID.
        now (Optional[datetime]): Row creation time, defaults to the current UTC time.

    Returns:
        list[str]: IDs of rows created by this call.

    Raises:
        ReservationNotFound: If the reservation does not exist.
        SQLAlchemyError: On store failures; the caller decides how to surface them.
    """
    now = now or utc_now()
    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
    if reservation is None:
        raise ReservationNotFound(reservation_id)

    if reservation["status"] not in SCHEDULABLE_STATUSES:
        logger.info(
            "email_sequence_not_schedulable",
            reservation_id=reservation_id,
            status=reservation["status"].value,
        )
        return []

    created: list[str] = []
    for email_type, fire_at in compute_schedule(reservation).items():
        try:
            with engine.begin() as conn:
                if find_blocking_email(conn, reservation_id, email_type):
                    continue
                email_id = insert_scheduled_email(conn, reservation_id, email_type, fire_at, now)
        except IntegrityError:
            logger.info(
                "scheduled_email_exists",
                reservation_id=reservation_id,
                email_type=email_type.value,
            )
            continue
        created.append(email_id)
        emails_scheduled.labels(email_type=email_type.value).inc()
        logger.info(
            "scheduled_email_created",
            reservation_id=reservation_id,
            email_type=email_type.value,
            scheduled_at=fire_at.isoformat(),
        )
    return created


def cancel_scheduled_emails(
    engine: Engine, reservation_id: str, reason: str, now: Optional[datetime] = None
) -> int:
    """
    Skip every still-scheduled email of a reservation, recording ``reason``.

    Returns:
        int: Number of rows skipped.
    """
    with engine.begin() as conn:
        skipped = skip_pending_emails(conn, reservation_id, now or utc_now(), reason)
    if skipped:
        logger.info(
            "scheduled_emails_cancelled",
            reservation_id=reservation_id,
            count=skipped,
            reason=reason,
        )
    return skipped


def reschedule_for_reservation(
    engine: Engine, reservation_id: str, now: Optional[datetime] = None
) -> list[str]:
    """Drop pending rows after a date change and schedule against the new dates."""
    now = now or utc_now()
    cancel_scheduled_emails(engine, reservation_id, "dates changed", now)
    return schedule_for_reservation(engine, reservation_id, now)


def _skip(engine: Engine, email: dict[str, Any], now: datetime, reason: str) -> ExecutionOutcome:
    with engine.begin() as conn:
        updated = mark_email_skipped(conn, email["id"], now, reason)
    outcome = ExecutionOutcome.SKIPPED if updated else ExecutionOutcome.ALREADY_PROCESSED
    logger.info(
        "scheduled_email_skipped",
        email_id=email["id"],
        reservation_id=email["reservation_id"],
        email_type=email["email_type"].value,
        reason=reason,
    )
    return outcome


def _execute(
    engine: Engine, sender: NotificationSender, email: dict[str, Any], now: datetime
) -> ExecutionOutcome:
    rule = EMAIL_RULES[email["email_type"]]

    with engine.begin() as conn:
        claimed = claim_email(
            conn, email["id"], now, now + timedelta(seconds=EMAIL_CLAIM_LEASE_SECONDS)
        )
    if not claimed:
        return ExecutionOutcome.ALREADY_PROCESSED

    with engine.connect() as conn:
        reservation = get_reservation(conn, email["reservation_id"])
        open_issue = (
            reservation is not None
            and rule.skip_on_open_issue
            and has_open_issue(conn, email["reservation_id"])
        )

    if reservation is None:
        return _skip(engine, email, now, "reservation not found")
    if reservation["status"] not in rule.sendable_statuses:
        return _skip(engine, email, now, f"reservation {reservation['status'].value}")
    if open_issue:
        return _skip(engine, email, now, ISSUE_REPORTED)
    if not reservation.get("guest_email"):
        return _skip(engine, email, now, "no guest email")

    try:
        receipt = sender.send(render_email(rule.email_type, reservation))
    except (SendFailure, TemplateError) as exc:
        logger.error(
            "scheduled_email_failed",
            email_id=email["id"],
            reservation_id=email["reservation_id"],
            email_type=rule.email_type.value,
            error=str(exc),
        )
        with engine.begin() as conn:
            mark_email_failed(conn, email["id"], utc_now(), str(exc))
        return ExecutionOutcome.FAILED

    with engine.begin() as conn:
        mark_email_sent(conn, email["id"], utc_now(), receipt.message_id)
    logger.info(
        "scheduled_email_sent",
        email_id=email["id"],
        reservation_id=email["reservation_id"],
        email_type=rule.email_type.value,
        message_id=receipt.message_id,
    )
    return ExecutionOutcome.SENT


def execute_scheduled_email(
    engine: Engine,
    sender: NotificationSender,
    email_id: str,
    now: Optional[datetime] = None,
) -> ExecutionOutcome:
    """
    Run the execution path for one due row.

    Safe under overlapping runner ticks: a row that already left ``scheduled``,
    or that another tick has leased, is reported as already processed and
    nothing is sent.

    Args:
        engine (Engine): SQLAlchemy engine.
        sender (NotificationSender): Mail delivery.
        email_id (str): ScheduledEmail ID.
        now (Optional[datetime]): Tick time, defaults to the current UTC time.

    Returns:
        ExecutionOutcome: What happened to the row.
    """
    now = now or utc_now()
    with engine.connect() as conn:
        email = get_scheduled_email(conn, email_id)

    if email is None or email["status"] != EmailStatus.SCHEDULED:
        outcome = ExecutionOutcome.ALREADY_PROCESSED
        email_type = email["email_type"].value if email else "unknown"
    else:
        outcome = _execute(engine, sender, email, now)
        email_type = email["email_type"].value

    emails_processed.labels(email_type=email_type, outcome=outcome.value).inc()
    return outcome
