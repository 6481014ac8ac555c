"""
Internal helper functions for connection route handlers.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.engine import Connection

from reservation_sync.db.readers.connections import get_connection

# Never returned over HTTP
SECRET_FIELDS = ("access_token", "refresh_token")


def get_connection_or_404(conn: Connection, connection_id: str) -> dict[str, Any]:
    """
    Fetch a connection, raise 404 if it doesn't exist.

    Raises:
        HTTPException: 404 if the connection doesn't exist
    """
    connection = get_connection(conn, connection_id)
    if connection is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Connection {connection_id} not found",
        )
    return connection


def public_connection(connection: dict[str, Any]) -> dict[str, Any]:
    """Connection row with tokens replaced by presence flags, JSON-ready."""
    body: dict[str, Any] = {}
    for key, value in connection.items():
        if key in SECRET_FIELDS:
            body[f"has_{key}"] = bool(value)
        elif hasattr(value, "isoformat"):
            body[key] = value.isoformat()
        else:
            body[key] = value
    return body
