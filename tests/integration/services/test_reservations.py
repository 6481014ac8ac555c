"""
Integration tests for reservation creation and stay-date changes.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Callable

import pytest
from sqlalchemy.engine import Engine

from reservation_sync.exceptions import (
    ConcurrentModification,
    DuplicateReservation,
    ReservationNotFound,
    ReservationNotModifiable,
)
from reservation_sync.models.enums import EmailStatus, EmailType, ExternalSyncStatus, ReservationStatus
from reservation_sync.services.reservations import (
    change_dates,
    create_reservation,
    get_reservation_snapshot,
)

BOOKED_AT = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)


def _data(**overrides: Any) -> dict[str, Any]:
    data = {
        "confirmation_number": "CONF-9001",
        "property_id": "prop-1",
        "property_name": "Casa Verde",
        "room_id": "room-1",
        "guest_id": "guest-1",
        "guest_name": "Ana Popescu",
        "guest_email": "ana@example.com",
        "check_in": date(2025, 6, 10),
        "check_out": date(2025, 6, 12),
        "timezone": "Europe/Bucharest",
        "payment_status": "pending",
    }
    data.update(overrides)
    return data


@pytest.mark.integration
def test_create_reservation_starts_tentative_and_schedules(engine: Engine) -> None:
    reservation = create_reservation(engine, _data(), now=BOOKED_AT)

    assert reservation["status"] == ReservationStatus.TENTATIVE
    assert reservation["external_sync_status"] == ExternalSyncStatus.NOT_SYNCED
    assert reservation["version"] == 1
    assert reservation["created_at"] == BOOKED_AT

    snapshot = get_reservation_snapshot(engine, reservation["id"])
    assert {e["email_type"] for e in snapshot["scheduled_emails"]} == set(EmailType)


@pytest.mark.integration
def test_duplicate_confirmation_number_rejected(engine: Engine) -> None:
    create_reservation(engine, _data(), now=BOOKED_AT)

    with pytest.raises(DuplicateReservation):
        create_reservation(engine, _data(), now=BOOKED_AT)

    # Same number at another property is fine
    create_reservation(engine, _data(property_id="prop-2"), now=BOOKED_AT)


@pytest.mark.integration
def test_create_rejects_inverted_dates(engine: Engine) -> None:
    with pytest.raises(ValueError):
        create_reservation(engine, _data(check_in=date(2025, 6, 12), check_out=date(2025, 6, 12)))


@pytest.mark.integration
def test_change_dates_reschedules(engine: Engine) -> None:
    reservation = create_reservation(engine, _data(), now=BOOKED_AT)

    updated = change_dates(engine, reservation["id"], date(2025, 7, 1), date(2025, 7, 4))

    assert updated["check_in"] == date(2025, 7, 1)
    assert updated["version"] == 2
    emails = get_reservation_snapshot(engine, reservation["id"])["scheduled_emails"]
    pending = {e["email_type"]: e for e in emails if e["status"] == EmailStatus.SCHEDULED}
    skipped = [e for e in emails if e["status"] == EmailStatus.SKIPPED]
    assert len(skipped) == 3
    assert {e["error_message"] for e in skipped} == {"dates changed"}
    assert pending[EmailType.POST_CHECKOUT]["scheduled_at"] == datetime(
        2025, 7, 5, 7, 0, tzinfo=timezone.utc
    )


@pytest.mark.integration
def test_change_dates_with_stale_version(engine: Engine) -> None:
    reservation = create_reservation(engine, _data(), now=BOOKED_AT)
    change_dates(engine, reservation["id"], date(2025, 7, 1), date(2025, 7, 4))

    with pytest.raises(ConcurrentModification):
        change_dates(
            engine, reservation["id"], date(2025, 8, 1), date(2025, 8, 4), expected_version=1
        )


@pytest.mark.integration
def test_change_dates_refused_after_check_in(
    engine: Engine, make_reservation: Callable[..., str]
) -> None:
    reservation_id = make_reservation(status="checked_in")

    with pytest.raises(ReservationNotModifiable):
        change_dates(engine, reservation_id, date(2025, 7, 1), date(2025, 7, 4))


@pytest.mark.integration
def test_snapshot_of_unknown_reservation(engine: Engine) -> None:
    with pytest.raises(ReservationNotFound):
        get_reservation_snapshot(engine, "missing")
