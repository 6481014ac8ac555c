from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from reservation_sync.models.enums import ExternalSyncStatus, PaymentStatus, ReservationStatus
from reservation_sync.models.reservations import Reservation
from reservation_sync.utils.datetime import ensure_utc

_TIMESTAMP_FIELDS = ("created_at", "updated_at", "pushed_at", "external_confirmed_at", "push_lease_until")


def _to_record(row: Any) -> dict[str, Any]:
    record = dict(row)
    record["status"] = ReservationStatus(record["status"])
    record["payment_status"] = PaymentStatus(record["payment_status"])
    record["external_sync_status"] = ExternalSyncStatus(record["external_sync_status"])
    for field in _TIMESTAMP_FIELDS:
        if record.get(field) is not None:
            record[field] = ensure_utc(record[field])
    return record


def get_reservation(conn: Connection, reservation_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a reservation by ID.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        reservation_id (str): Internal reservation ID.

    Returns:
        Optional[dict[str, Any]]: Column dict with enum-typed status fields, or None.
    """
    row = (
        conn.execute(select(Reservation.__table__).where(Reservation.id == reservation_id))
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def get_reservation_by_external_booking(
    conn: Connection, property_id: str, external_booking_id: str
) -> Optional[dict[str, Any]]:
    """
    Fetch the reservation a channel manager knows by ``external_booking_id``.

    The lookup is scoped to the property so one connection can never reach
    another property's bookings.
    """
    row = (
        conn.execute(
            select(Reservation.__table__)
            .where(Reservation.property_id == property_id)
            .where(Reservation.external_booking_id == external_booking_id)
        )
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None
