import json
import uuid
from datetime import date, datetime
from typing import Any

import structlog
from sqlalchemy import insert, or_, update
from sqlalchemy.engine import Connection

from reservation_sync.config import DEBUG
from reservation_sync.models.enums import ExternalSyncStatus, ReservationStatus
from reservation_sync.models.reservations import Reservation

logger = structlog.get_logger(__name__)


def insert_reservation(conn: Connection, data: dict[str, Any], now: datetime) -> str:
    """
    Insert a new reservation in ``tentative`` with version 1.

    Args:
        conn: Active connection inside a transaction.
        data: Column values from the create payload.
        now: Aware UTC creation time; becomes the booking-created timestamp.

    Returns:
        str: The new reservation ID.
    """
    reservation_id = data.get("id") or str(uuid.uuid4())
    row = {
        **data,
        "id": reservation_id,
        "status": ReservationStatus.TENTATIVE.value,
        "external_sync_status": ExternalSyncStatus.NOT_SYNCED.value,
        "version": 1,
        "created_at": now,
        "updated_at": now,
    }

    if DEBUG:
        logger.debug("Reservation to insert:\n%s", json.dumps(row, indent=2, default=str))

    conn.execute(insert(Reservation).values(row))
    return reservation_id


def compare_and_set_status(
    conn: Connection,
    reservation_id: str,
    expected_version: int,
    new_status: ReservationStatus,
    now: datetime,
) -> bool:
    """
    Move a reservation to ``new_status`` only if nobody changed it since ``expected_version``.

    Returns:
        bool: False when the version check lost (zero rows updated).
    """
    result = conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.version == expected_version)
        .values(status=new_status.value, version=expected_version + 1, updated_at=now)
    )
    return result.rowcount == 1


def compare_and_set_dates(
    conn: Connection,
    reservation_id: str,
    expected_version: int,
    check_in: date,
    check_out: date,
    now: datetime,
) -> bool:
    """Change stay dates under the same version check as status changes."""
    result = conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.version == expected_version)
        .values(
            check_in=check_in,
            check_out=check_out,
            version=expected_version + 1,
            updated_at=now,
        )
    )
    return result.rowcount == 1


def claim_push_lease(
    conn: Connection, reservation_id: str, now: datetime, lease_until: datetime
) -> bool:
    """
    Take the per-reservation push lease.

    Succeeds only while the sync status still allows a push and no unexpired
    lease is held, so at most one push per reservation is in flight. Does not
    bump ``version``: the sync axis is independent of the status axis.
    """
    result = conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(
            Reservation.external_sync_status.in_(
                [ExternalSyncStatus.NOT_SYNCED.value, ExternalSyncStatus.FAILED.value]
            )
        )
        .where(or_(Reservation.push_lease_until.is_(None), Reservation.push_lease_until <= now))
        .values(push_lease_until=lease_until)
    )
    return result.rowcount == 1


def mark_push_succeeded(
    conn: Connection, reservation_id: str, external_booking_id: str, now: datetime
) -> None:
    conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(
            external_sync_status=ExternalSyncStatus.PUSHED.value,
            external_booking_id=external_booking_id,
            pushed_at=now,
            push_lease_until=None,
            updated_at=now,
        )
    )


def mark_push_failed(conn: Connection, reservation_id: str, now: datetime) -> None:
    conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(
            external_sync_status=ExternalSyncStatus.FAILED.value,
            push_lease_until=None,
            updated_at=now,
        )
    )


def mark_sync_confirmed(conn: Connection, reservation_id: str, now: datetime) -> None:
    """Record the channel manager's confirmation of a pushed booking."""
    conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(
            external_sync_status=ExternalSyncStatus.CONFIRMED.value,
            external_confirmed_at=now,
            updated_at=now,
        )
    )


def claim_confirmation(conn: Connection, reservation_id: str, now: datetime) -> bool:
    """
    Set ``confirmation_sent`` unless it is already set.

    Returns:
        bool: True when this caller owns the confirmation send.
    """
    result = conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.confirmation_sent.is_(False))
        .values(confirmation_sent=True, updated_at=now)
    )
    return result.rowcount == 1


def release_confirmation(conn: Connection, reservation_id: str, now: datetime) -> None:
    conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(confirmation_sent=False, updated_at=now)
    )
