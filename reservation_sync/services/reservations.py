"""Reservation creation and date changes; status changes live in state_machine."""

from datetime import date, datetime
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from reservation_sync.db.readers.reservations import get_reservation
from reservation_sync.db.readers.scheduled_emails import list_emails_for_reservation
from reservation_sync.db.writers.reservations import compare_and_set_dates, insert_reservation
from reservation_sync.exceptions import (
    ConcurrentModification,
    DuplicateReservation,
    ReservationNotFound,
    ReservationNotModifiable,
    SchedulingFailure,
)
from reservation_sync.models.enums import ReservationStatus
from reservation_sync.services.email_sequence import (
    reschedule_for_reservation,
    schedule_for_reservation,
)
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

DATE_CHANGE_STATUSES = frozenset({ReservationStatus.TENTATIVE, ReservationStatus.CONFIRMED})


def create_reservation(
    engine: Engine, data: dict[str, Any], now: Optional[datetime] = None
) -> dict[str, Any]:
    """
    Create a reservation in ``tentative`` and schedule its follow-up sequence.

    Args:
        engine (Engine): SQLAlchemy engine.
        data (dict[str, Any]): Validated column values.
        now (Optional[datetime]): Booking creation time.

    Returns:
        dict[str, Any]: The stored reservation.

    Raises:
        ValueError: If check-out is not after check-in.
        DuplicateReservation: Confirmation number already used at the property.
        SchedulingFailure: Reservation stored, sequence not scheduled.
    """
    if data["check_out"] <= data["check_in"]:
        raise ValueError("check_out must be after check_in")

    now = now or utc_now()
    try:
        with engine.begin() as conn:
            reservation_id = insert_reservation(conn, data, now)
    except IntegrityError as exc:
        raise DuplicateReservation(data["property_id"], data["confirmation_number"]) from exc

    logger.info(
        "reservation_created",
        reservation_id=reservation_id,
        property_id=data["property_id"],
        confirmation_number=data["confirmation_number"],
    )

    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
    if reservation is None:
        raise ReservationNotFound(reservation_id)

    try:
        schedule_for_reservation(engine, reservation_id, now)
    except Exception as exc:
        logger.exception("email_sequence_schedule_failed", reservation_id=reservation_id)
        raise SchedulingFailure(reservation_id, reservation, exc) from exc

    return reservation


def change_dates(
    engine: Engine,
    reservation_id: str,
    check_in: date,
    check_out: date,
    expected_version: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Move a reservation's stay dates and recompute its pending emails.

    Pending rows are skipped with reason ``"dates changed"`` and scheduled
    afresh; rows already sent or failed stay as they are and are not repeated.

    Raises:
        ValueError: If check-out is not after check-in.
        ReservationNotFound: Unknown reservation.
        ReservationNotModifiable: Reservation is past the point of date changes.
        ConcurrentModification: ``expected_version`` is stale or a concurrent
            write won the version check.
        SchedulingFailure: Dates committed, sequence not recomputed.
    """
    if check_out <= check_in:
        raise ValueError("check_out must be after check_in")

    now = now or utc_now()
    with engine.begin() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        if reservation["status"] not in DATE_CHANGE_STATUSES:
            raise ReservationNotModifiable(reservation_id, reservation["status"].value)

        version = reservation["version"]
        if expected_version is not None and expected_version != version:
            raise ConcurrentModification(reservation_id, expected_version)
        if not compare_and_set_dates(conn, reservation_id, version, check_in, check_out, now):
            raise ConcurrentModification(reservation_id, version)

    logger.info(
        "reservation_dates_changed",
        reservation_id=reservation_id,
        check_in=check_in.isoformat(),
        check_out=check_out.isoformat(),
    )

    with engine.connect() as conn:
        updated = get_reservation(conn, reservation_id)
    if updated is None:
        raise ReservationNotFound(reservation_id)

    try:
        reschedule_for_reservation(engine, reservation_id, now)
    except Exception as exc:
        logger.exception("email_sequence_reschedule_failed", reservation_id=reservation_id)
        raise SchedulingFailure(reservation_id, updated, exc) from exc

    return updated


def get_reservation_snapshot(engine: Engine, reservation_id: str) -> dict[str, Any]:
    """Reservation row plus its scheduled-email audit trail."""
    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        reservation["scheduled_emails"] = list_emails_for_reservation(conn, reservation_id)
    return reservation
