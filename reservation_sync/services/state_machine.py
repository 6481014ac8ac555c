"""
Reservation status state machine.

The adjacency table below is the only definition of a legal status change.
Every write goes through a compare-and-swap on ``reservations.version`` so a
concurrent admin action and webhook cannot both apply on the same read.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from reservation_sync.db.readers.reservations import get_reservation
from reservation_sync.db.writers.reservations import compare_and_set_status
from reservation_sync.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    ReservationNotFound,
    SchedulingFailure,
)
from reservation_sync.metrics import transitions_total
from reservation_sync.models.enums import ReservationStatus, TransitionOrigin
from reservation_sync.services.email_sequence import (
    cancel_scheduled_emails,
    schedule_for_reservation,
)
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

S = ReservationStatus

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    S.TENTATIVE: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.CHECKED_IN, S.CANCELLED, S.NO_SHOW}),
    S.CHECKED_IN: frozenset({S.CHECKED_OUT}),
    S.CHECKED_OUT: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Self-transitions accepted as a no-op, only from webhook redelivery.
IDEMPOTENT_WEBHOOK_STATUSES = frozenset({S.CONFIRMED, S.CANCELLED})


@dataclass(frozen=True)
class TransitionResult:
    reservation_id: str
    previous_status: ReservationStatus
    status: ReservationStatus
    origin: TransitionOrigin
    applied: bool
    version: int
    scheduled_email_ids: list[str] = field(default_factory=list)
    skipped_email_count: int = 0


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _record(current: ReservationStatus, target: ReservationStatus, origin: TransitionOrigin, outcome: str) -> None:
    transitions_total.labels(
        from_status=current.value,
        to_status=target.value,
        origin=origin.value,
        outcome=outcome,
    ).inc()


def transition(
    engine: Engine,
    reservation_id: str,
    target: ReservationStatus,
    origin: TransitionOrigin,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Apply one status change to a reservation.

    The status write commits before the email side effects run: entering
    ``confirmed`` schedules the follow-up sequence, entering ``cancelled`` or
    ``no_show`` skips every still-scheduled email. A side-effect failure does
    not undo the status change.

    Args:
        engine (Engine): SQLAlchemy engine.
        reservation_id (str): Internal reservation ID.
        target (ReservationStatus): Requested status.
        origin (TransitionOrigin): Who asked; webhook redelivery of ``confirmed``
            or ``cancelled`` onto the same status is a successful no-op.
        now (Optional[datetime]): Transition time, defaults to the current UTC time.

    Returns:
        TransitionResult: ``applied`` is False for an idempotent no-op.

    Raises:
        ReservationNotFound: Unknown reservation.
        InvalidTransition: Edge not in the adjacency table. Never retry.
        ConcurrentModification: Lost the version check. Re-read and retry.
        SchedulingFailure: Status committed, email side effect failed.
    """
    now = now or utc_now()

    with engine.begin() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)

        current: ReservationStatus = reservation["status"]
        version: int = reservation["version"]

        if current == target:
            if origin == TransitionOrigin.EXTERNAL_WEBHOOK and target in IDEMPOTENT_WEBHOOK_STATUSES:
                _record(current, target, origin, "noop")
                logger.info(
                    "reservation_transition_noop",
                    reservation_id=reservation_id,
                    status=current.value,
                    origin=origin.value,
                )
                return TransitionResult(
                    reservation_id=reservation_id,
                    previous_status=current,
                    status=current,
                    origin=origin,
                    applied=False,
                    version=version,
                )
            _record(current, target, origin, "invalid")
            raise InvalidTransition(reservation_id, current.value, target.value)

        if not can_transition(current, target):
            _record(current, target, origin, "invalid")
            logger.warning(
                "reservation_transition_rejected",
                reservation_id=reservation_id,
                current=current.value,
                target=target.value,
                origin=origin.value,
            )
            raise InvalidTransition(reservation_id, current.value, target.value)

        if not compare_and_set_status(conn, reservation_id, version, target, now):
            _record(current, target, origin, "conflict")
            raise ConcurrentModification(reservation_id, version)

    _record(current, target, origin, "applied")
    logger.info(
        "reservation_transitioned",
        reservation_id=reservation_id,
        previous_status=current.value,
        status=target.value,
        origin=origin.value,
        version=version + 1,
    )

    result = TransitionResult(
        reservation_id=reservation_id,
        previous_status=current,
        status=target,
        origin=origin,
        applied=True,
        version=version + 1,
    )

    try:
        if target == S.CONFIRMED:
            scheduled = schedule_for_reservation(engine, reservation_id, now)
            result = replace(result, scheduled_email_ids=scheduled)
        elif target in (S.CANCELLED, S.NO_SHOW):
            skipped = cancel_scheduled_emails(
                engine, reservation_id, f"reservation {target.value}", now
            )
            result = replace(result, skipped_email_count=skipped)
    except Exception as exc:
        logger.exception(
            "email_sequence_update_failed",
            reservation_id=reservation_id,
            status=target.value,
        )
        raise SchedulingFailure(reservation_id, result, exc) from exc

    return result


def transition_with_retry(
    engine: Engine,
    reservation_id: str,
    target: ReservationStatus,
    origin: TransitionOrigin,
    max_attempts: int,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Call ``transition`` again on ConcurrentModification, up to ``max_attempts`` times.

    Each attempt re-reads the reservation, so a race that made the request a
    no-op or an invalid edge resolves to that outcome instead of a conflict.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return transition(engine, reservation_id, target, origin, now)
        except ConcurrentModification:
            if attempt >= max_attempts:
                raise
            logger.info(
                "reservation_transition_retry",
                reservation_id=reservation_id,
                target=target.value,
                attempt=attempt,
            )
            attempt += 1
