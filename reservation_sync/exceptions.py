"""
Error taxonomy for the reservation lifecycle core.

Services raise these; routes translate them into HTTP status codes. Nothing in
the services swallows them, except the scheduler runner which records per-row
failures in the database so one bad row cannot block a batch.
"""

from __future__ import annotations

from typing import Any


class ReservationSyncError(Exception):
    """Base class for every domain error raised by this package."""


class ReservationNotFound(ReservationSyncError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(f"Reservation {reservation_id} not found")
        self.reservation_id = reservation_id


class InvalidTransition(ReservationSyncError):
    """Attempted status change is not an edge of the adjacency table. Never retried."""

    def __init__(self, reservation_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Reservation {reservation_id} cannot move from {current} to {target}"
        )
        self.reservation_id = reservation_id
        self.current = current
        self.target = target


class ConcurrentModification(ReservationSyncError):
    """Optimistic concurrency check lost; re-read the reservation and retry."""

    def __init__(self, reservation_id: str, expected_version: int) -> None:
        super().__init__(
            f"Reservation {reservation_id} changed concurrently (expected version "
            f"{expected_version})"
        )
        self.reservation_id = reservation_id
        self.expected_version = expected_version


class SchedulingFailure(ReservationSyncError):
    """
    The status transition committed but the email sequence could not be updated.

    ``result`` carries the committed transition so callers can still report it.
    """

    def __init__(self, reservation_id: str, result: Any, cause: Exception) -> None:
        super().__init__(f"Email scheduling failed for reservation {reservation_id}: {cause}")
        self.reservation_id = reservation_id
        self.result = result
        self.cause = cause


class Unauthorized(ReservationSyncError):
    """Inbound request failed the trust boundary (missing or bad signature/token)."""


class SourceNotAllowed(Unauthorized):
    """Inbound request came from an address outside the allow-list."""


class NotFound(ReservationSyncError):
    """Unknown connection, accommodation or external booking."""


class InvalidEvent(ReservationSyncError):
    """Inbound webhook body could not be parsed or validated."""


class DuplicateConnection(ReservationSyncError):
    def __init__(self, property_id: str, system_type: str) -> None:
        super().__init__(
            f"Property {property_id} already has an active {system_type} connection"
        )
        self.property_id = property_id
        self.system_type = system_type


class ExternalSyncFailure(ReservationSyncError):
    """Push to, or call against, the channel manager failed. Not retried automatically."""

    def __init__(self, reservation_id: str | None, message: str) -> None:
        super().__init__(message)
        self.reservation_id = reservation_id


class SendFailure(ReservationSyncError):
    """Notification provider rejected or did not acknowledge a message."""


class DuplicateReservation(ReservationSyncError):
    def __init__(self, property_id: str, confirmation_number: str) -> None:
        super().__init__(
            f"Property {property_id} already has a reservation {confirmation_number}"
        )
        self.property_id = property_id
        self.confirmation_number = confirmation_number


class ReservationNotModifiable(ReservationSyncError):
    """Stay dates can only change while a reservation is tentative or confirmed."""

    def __init__(self, reservation_id: str, status: str) -> None:
        super().__init__(f"Reservation {reservation_id} is {status}; dates cannot change")
        self.reservation_id = reservation_id
        self.status = status
