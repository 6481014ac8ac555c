from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from reservation_sync.cache import token_cache
from reservation_sync.db.writers.connections import (
    delete_connection,
    disconnect_connection,
    insert_connection,
    update_connection,
    upsert_room_mapping,
)
from reservation_sync.dependencies import get_db_engine
from reservation_sync.exceptions import ReservationSyncError
from reservation_sync.routes._connection_helpers import get_connection_or_404, public_connection
from reservation_sync.routes._errors import to_http_exception
from reservation_sync.schemas.connections import (
    ConnectionCreatePayload,
    ConnectionUpdatePayload,
    RoomMappingPayload,
)
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/connections", status_code=status.HTTP_201_CREATED)
def create_connection(
    payload: ConnectionCreatePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Link a property to a channel manager.

    Returns 409 if the property already has an active connection of that type.
    """
    data = payload.model_dump()
    data["system_type"] = payload.system_type.value
    try:
        with engine.begin() as conn:
            connection_id = insert_connection(conn, data, utc_now())
            return public_connection(get_connection_or_404(conn, connection_id))
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Property {payload.property_id} already has an active connection",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("connection_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/connections/{connection_id}")
def get_connection_endpoint(
    connection_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    with engine.connect() as conn:
        return public_connection(get_connection_or_404(conn, connection_id))


@router.patch("/connections/{connection_id}")
def update_connection_endpoint(
    connection_id: str,
    payload: ConnectionUpdatePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Update a connection. Only fields present in the payload are written.

    Token changes drop the cached access token for this connection.
    """
    update_data = payload.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    try:
        with engine.begin() as conn:
            get_connection_or_404(conn, connection_id)
            update_connection(conn, connection_id, update_data, utc_now())
            connection = get_connection_or_404(conn, connection_id)
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Property already has an active connection of this type",
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("connection_update_failed", connection_id=connection_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    token_cache.invalidate(connection_id)
    logger.info("connection_updated", connection_id=connection_id, fields=sorted(update_data))
    return public_connection(connection)


@router.delete("/connections/{connection_id}")
def delete_connection_endpoint(
    connection_id: str,
    hard: bool = Query(False, description="Delete the row and its audit trail instead of disconnecting"),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """
    Disconnect a property from its channel manager.

    A soft delete keeps the row and its webhook audit log; pushes for the
    property then report ``channel_manager=internal``.
    """
    try:
        with engine.begin() as conn:
            get_connection_or_404(conn, connection_id)
            if hard:
                delete_connection(conn, connection_id)
            else:
                disconnect_connection(conn, connection_id, utc_now())
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("connection_delete_failed", connection_id=connection_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    token_cache.invalidate(connection_id)
    logger.info("connection_deleted", connection_id=connection_id, hard=hard)
    return {"message": f"Connection {connection_id} {'deleted' if hard else 'disconnected'}"}


@router.put("/connections/{connection_id}/room-mappings")
def map_room(
    connection_id: str,
    payload: RoomMappingPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """Map an internal room to the channel manager's room type, replacing any previous mapping."""
    with engine.begin() as conn:
        get_connection_or_404(conn, connection_id)
        upsert_room_mapping(
            conn, connection_id, payload.room_id, payload.external_room_id, utc_now()
        )
    return {
        "connection_id": connection_id,
        "room_id": payload.room_id,
        "external_room_id": payload.external_room_id,
    }
