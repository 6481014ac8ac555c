"""
Unit tests for translating domain errors into HTTP status codes.
"""

from __future__ import annotations

import pytest

from reservation_sync.exceptions import (
    ConcurrentModification,
    DuplicateConnection,
    ExternalSyncFailure,
    InvalidEvent,
    InvalidTransition,
    NotFound,
    ReservationNotFound,
    ReservationSyncError,
    SourceNotAllowed,
    Unauthorized,
)
from reservation_sync.routes._errors import status_for, to_http_exception


@pytest.mark.unit
@pytest.mark.parametrize(
    "error,status_code",
    [
        (InvalidTransition("r1", "cancelled", "confirmed"), 409),
        (ConcurrentModification("r1", 3), 409),
        (DuplicateConnection("prop-1", "octorate"), 409),
        (ReservationNotFound("r1"), 404),
        (NotFound("No active connection"), 404),
        (Unauthorized("Invalid webhook signature"), 401),
        (SourceNotAllowed("Source 1.2.3.4 is not allowed"), 403),
        (InvalidEvent("Malformed webhook body"), 400),
        (ExternalSyncFailure("r1", "Booking push failed"), 502),
        (ReservationSyncError("boom"), 500),
    ],
)
def test_status_for(error: ReservationSyncError, status_code: int) -> None:
    assert status_for(error) == status_code


@pytest.mark.unit
def test_internal_errors_get_generic_detail() -> None:
    http_error = to_http_exception(ReservationSyncError("db password in message"))

    assert http_error.status_code == 500
    assert http_error.detail == "Internal server error"


@pytest.mark.unit
def test_client_errors_keep_message() -> None:
    http_error = to_http_exception(InvalidTransition("r1", "cancelled", "confirmed"))

    assert http_error.status_code == 409
    assert "cannot move from cancelled to confirmed" in http_error.detail
