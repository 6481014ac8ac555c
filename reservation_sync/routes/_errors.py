"""
Translation of domain errors into HTTP errors for the route handlers.

Response bodies carry the error message for client errors only; anything that
maps to 500 gets a generic body and is logged with full context instead.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from reservation_sync.exceptions import (
    ConcurrentModification,
    DuplicateConnection,
    DuplicateReservation,
    ExternalSyncFailure,
    InvalidEvent,
    InvalidTransition,
    NotFound,
    ReservationNotFound,
    ReservationNotModifiable,
    ReservationSyncError,
    SendFailure,
    SourceNotAllowed,
    Unauthorized,
)

# Order matters: subclasses before their bases.
STATUS_BY_ERROR: list[tuple[type[ReservationSyncError], int]] = [
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (DuplicateConnection, status.HTTP_409_CONFLICT),
    (DuplicateReservation, status.HTTP_409_CONFLICT),
    (ReservationNotModifiable, status.HTTP_409_CONFLICT),
    (ReservationNotFound, status.HTTP_404_NOT_FOUND),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (SourceNotAllowed, status.HTTP_403_FORBIDDEN),
    (Unauthorized, status.HTTP_401_UNAUTHORIZED),
    (InvalidEvent, status.HTTP_400_BAD_REQUEST),
    (ExternalSyncFailure, status.HTTP_502_BAD_GATEWAY),
    (SendFailure, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: ReservationSyncError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: ReservationSyncError) -> HTTPException:
    status_code = status_for(exc)
    if status_code >= 500 and status_code != status.HTTP_502_BAD_GATEWAY:
        return HTTPException(status_code=status_code, detail="Internal server error")
    return HTTPException(status_code=status_code, detail=str(exc))
