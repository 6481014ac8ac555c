import uuid
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import delete, insert, update
from sqlalchemy.engine import Connection

from reservation_sync.db.readers.connections import get_active_connection_for_property
from reservation_sync.exceptions import DuplicateConnection
from reservation_sync.models.connections import ExternalConnection, ExternalRoomMapping

logger = structlog.get_logger(__name__)


def insert_connection(conn: Connection, data: dict[str, Any], now: datetime) -> str:
    """
    Insert a new active and connected channel-manager link for a property.

    Args:
        conn: Active connection inside a transaction.
        data: Column values (property_id, system_type, external_accommodation_id, tokens).
        now: Aware UTC timestamp.

    Returns:
        str: The new connection ID.

    Raises:
        DuplicateConnection: If the property already has an active connection of that type.
    """
    system_type = data.get("system_type", "octorate")
    if get_active_connection_for_property(conn, data["property_id"], system_type):
        raise DuplicateConnection(data["property_id"], system_type)

    connection_id = str(uuid.uuid4())
    conn.execute(
        insert(ExternalConnection).values(
            {
                **data,
                "id": connection_id,
                "system_type": system_type,
                "is_active": True,
                "is_connected": True,
                "created_at": now,
                "updated_at": now,
            }
        )
    )
    logger.info(
        "connection_inserted",
        connection_id=connection_id,
        property_id=data["property_id"],
        system_type=system_type,
    )
    return connection_id


def update_connection(
    conn: Connection, connection_id: str, update_data: dict[str, Any], now: datetime
) -> None:
    """Update whitelisted fields of a connection (tokens, flags, accommodation)."""
    conn.execute(
        update(ExternalConnection)
        .where(ExternalConnection.id == connection_id)
        .values(**update_data, updated_at=now)
    )


def update_tokens(
    conn: Connection,
    connection_id: str,
    access_token: str,
    expires_at: Optional[datetime],
    now: datetime,
    refresh_token: Optional[str] = None,
) -> None:
    """
    Store a refreshed access token; the refresh token is only replaced when a new one is issued.
    """
    values: dict[str, Any] = {
        "access_token": access_token,
        "token_expires_at": expires_at,
        "updated_at": now,
    }
    if refresh_token:
        values["refresh_token"] = refresh_token
    conn.execute(
        update(ExternalConnection).where(ExternalConnection.id == connection_id).values(**values)
    )


def disconnect_connection(conn: Connection, connection_id: str, now: datetime) -> None:
    """Soft delete: keep the row (and its webhook audit trail) but stop using it."""
    conn.execute(
        update(ExternalConnection)
        .where(ExternalConnection.id == connection_id)
        .values(is_active=False, is_connected=False, updated_at=now)
    )


def delete_connection(conn: Connection, connection_id: str) -> None:
    """Hard delete; room mappings and webhook events cascade."""
    conn.execute(delete(ExternalRoomMapping).where(ExternalRoomMapping.connection_id == connection_id))
    conn.execute(delete(ExternalConnection).where(ExternalConnection.id == connection_id))


def upsert_room_mapping(
    conn: Connection, connection_id: str, room_id: str, external_room_id: str, now: datetime
) -> None:
    """Map an internal room to an external room type, replacing any previous mapping."""
    updated = conn.execute(
        update(ExternalRoomMapping)
        .where(ExternalRoomMapping.connection_id == connection_id)
        .where(ExternalRoomMapping.room_id == room_id)
        .values(external_room_id=external_room_id)
    )
    if updated.rowcount == 0:
        conn.execute(
            insert(ExternalRoomMapping).values(
                id=str(uuid.uuid4()),
                connection_id=connection_id,
                room_id=room_id,
                external_room_id=external_room_id,
                created_at=now,
            )
        )
