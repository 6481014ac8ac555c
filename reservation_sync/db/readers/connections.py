from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from reservation_sync.models.connections import ExternalConnection, ExternalRoomMapping
from reservation_sync.utils.datetime import ensure_utc


def _to_record(row: Any) -> dict[str, Any]:
    record = dict(row)
    if record.get("token_expires_at") is not None:
        record["token_expires_at"] = ensure_utc(record["token_expires_at"])
    return record


def get_connection(conn: Connection, connection_id: str) -> Optional[dict[str, Any]]:
    """
    Fetch a connection by ID regardless of its active/connected flags.

    Args:
        conn (Connection): Active SQLAlchemy connection.
        connection_id (str): ExternalConnection ID.

    Returns:
        Optional[dict[str, Any]]: Row dict or None.
    """
    row = (
        conn.execute(
            select(ExternalConnection.__table__).where(ExternalConnection.id == connection_id)
        )
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def get_active_connection_for_property(
    conn: Connection, property_id: str, system_type: str = "octorate"
) -> Optional[dict[str, Any]]:
    """Return the property's active and connected link, or None for internal-only properties."""
    row = (
        conn.execute(
            select(ExternalConnection.__table__)
            .where(ExternalConnection.property_id == property_id)
            .where(ExternalConnection.system_type == system_type)
            .where(ExternalConnection.is_active == True)  # noqa: E712
            .where(ExternalConnection.is_connected == True)  # noqa: E712
        )
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def get_active_connection_by_accommodation(
    conn: Connection, external_accommodation_id: str
) -> Optional[dict[str, Any]]:
    """Resolve the active and connected link that owns an external accommodation ID."""
    row = (
        conn.execute(
            select(ExternalConnection.__table__)
            .where(ExternalConnection.external_accommodation_id == external_accommodation_id)
            .where(ExternalConnection.is_active == True)  # noqa: E712
            .where(ExternalConnection.is_connected == True)  # noqa: E712
        )
        .mappings()
        .fetchone()
    )
    return _to_record(row) if row else None


def get_external_room_id(conn: Connection, connection_id: str, room_id: str) -> Optional[str]:
    """
    Get the channel manager's room type ID for an internal room.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        connection_id (str): ExternalConnection ID.
        room_id (str): Internal room ID.

    Returns:
        Optional[str]: External room type ID or None if unmapped.
    """
    result = conn.execute(
        select(ExternalRoomMapping.external_room_id)
        .where(ExternalRoomMapping.connection_id == connection_id)
        .where(ExternalRoomMapping.room_id == room_id)
    )
    row = result.fetchone()
    return row[0] if row else None
