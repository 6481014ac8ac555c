"""
Integration tests for the one-off booking confirmation email.
"""

from __future__ import annotations

from typing import Callable

import pytest
from sqlalchemy.engine import Engine

from reservation_sync.db.readers.reservations import get_reservation
from reservation_sync.exceptions import ReservationNotFound, SendFailure
from reservation_sync.services.booking_confirmation import send_booking_confirmation


def _confirmation_sent(engine: Engine, reservation_id: str) -> bool:
    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
    assert reservation is not None
    return bool(reservation["confirmation_sent"])


@pytest.mark.integration
def test_sends_once_and_sets_flag(
    engine: Engine, make_reservation: Callable[..., str], fake_sender  # type: ignore[no-untyped-def]
) -> None:
    reservation_id = make_reservation(status="confirmed")

    first = send_booking_confirmation(engine, fake_sender, reservation_id)
    second = send_booking_confirmation(engine, fake_sender, reservation_id)

    assert first is True
    assert second is False
    assert len(fake_sender.sent) == 1
    message = fake_sender.sent[0]
    assert message.to_email == "ana@example.com"
    assert message.subject == "Booking Confirmation - Casa Verde"
    assert "Total: 332.00 EUR" in message.text
    assert _confirmation_sent(engine, reservation_id)


@pytest.mark.integration
def test_tentative_reservation_is_not_confirmed_by_email(
    engine: Engine, make_reservation: Callable[..., str], fake_sender  # type: ignore[no-untyped-def]
) -> None:
    reservation_id = make_reservation()

    assert send_booking_confirmation(engine, fake_sender, reservation_id) is False
    assert fake_sender.sent == []
    assert not _confirmation_sent(engine, reservation_id)


@pytest.mark.integration
def test_skips_without_guest_email(
    engine: Engine, make_reservation: Callable[..., str], fake_sender  # type: ignore[no-untyped-def]
) -> None:
    reservation_id = make_reservation(status="confirmed", guest_email=None)

    assert send_booking_confirmation(engine, fake_sender, reservation_id) is False
    assert fake_sender.sent == []
    assert not _confirmation_sent(engine, reservation_id)


@pytest.mark.integration
def test_send_failure_clears_flag_for_a_later_attempt(
    engine: Engine, make_reservation: Callable[..., str], fake_sender  # type: ignore[no-untyped-def]
) -> None:
    reservation_id = make_reservation(status="confirmed")
    fake_sender.fail = True

    with pytest.raises(SendFailure):
        send_booking_confirmation(engine, fake_sender, reservation_id)
    assert not _confirmation_sent(engine, reservation_id)

    fake_sender.fail = False
    assert send_booking_confirmation(engine, fake_sender, reservation_id) is True
    assert len(fake_sender.sent) == 1


@pytest.mark.integration
def test_unknown_reservation(engine: Engine, fake_sender) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ReservationNotFound):
        send_booking_confirmation(engine, fake_sender, "missing")
