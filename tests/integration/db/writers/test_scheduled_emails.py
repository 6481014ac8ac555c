"""
Integration tests for the scheduled emails database writer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from reservation_sync.db.readers.scheduled_emails import (
    find_blocking_email,
    get_scheduled_email,
    list_due_emails,
)
from reservation_sync.db.writers.scheduled_emails import (
    claim_email,
    insert_scheduled_email,
    mark_email_failed,
    mark_email_sent,
    skip_pending_emails,
)
from reservation_sync.models.enums import EmailStatus, EmailType

NOW = datetime(2025, 6, 4, 8, 0, tzinfo=timezone.utc)
FIRE_AT = datetime(2025, 6, 4, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def email_id(engine: Engine, make_reservation: Callable[..., str]) -> str:
    reservation_id = make_reservation()
    with engine.begin() as conn:
        return insert_scheduled_email(
            conn, reservation_id, EmailType.POST_BOOKING_FOLLOWUP, FIRE_AT, FIRE_AT
        )


@pytest.mark.integration
def test_second_pending_row_for_same_type_is_rejected(engine: Engine, email_id: str) -> None:
    with engine.connect() as conn:
        row = get_scheduled_email(conn, email_id)
    assert row is not None

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            insert_scheduled_email(
                conn, row["reservation_id"], EmailType.POST_BOOKING_FOLLOWUP, FIRE_AT, NOW
            )


@pytest.mark.integration
def test_finished_row_does_not_block_a_new_pending_row(engine: Engine, email_id: str) -> None:
    """Test that the uniqueness only covers rows still scheduled."""
    with engine.begin() as conn:
        row = get_scheduled_email(conn, email_id)
        assert row is not None
        skip_pending_emails(conn, row["reservation_id"], NOW, "dates changed")
        new_id = insert_scheduled_email(
            conn, row["reservation_id"], EmailType.POST_BOOKING_FOLLOWUP, FIRE_AT, NOW
        )

    assert new_id != email_id


@pytest.mark.integration
def test_claim_is_exclusive(engine: Engine, email_id: str) -> None:
    lease_until = NOW + timedelta(minutes=5)

    with engine.begin() as conn:
        assert claim_email(conn, email_id, NOW, lease_until)
        assert not claim_email(conn, email_id, NOW, lease_until)
        assert list_due_emails(conn, NOW, 10) == []
        # Visible again once the lease lapses
        assert len(list_due_emails(conn, lease_until, 10)) == 1


@pytest.mark.integration
def test_finish_only_once(engine: Engine, email_id: str) -> None:
    with engine.begin() as conn:
        assert mark_email_sent(conn, email_id, NOW, "msg-1")
        assert not mark_email_failed(conn, email_id, NOW, "late failure")
        row = get_scheduled_email(conn, email_id)

    assert row is not None
    assert row["status"] == EmailStatus.SENT
    assert row["provider_message_id"] == "msg-1"
    assert row["sent_at"] == NOW
    assert row["error_message"] is None


@pytest.mark.integration
def test_due_list_excludes_future_and_finished_rows(
    engine: Engine, make_reservation: Callable[..., str]
) -> None:
    reservation_id = make_reservation()
    with engine.begin() as conn:
        due = insert_scheduled_email(conn, reservation_id, EmailType.POST_CHECKIN, FIRE_AT, FIRE_AT)
        insert_scheduled_email(
            conn, reservation_id, EmailType.POST_CHECKOUT, NOW + timedelta(days=1), FIRE_AT
        )
        sent = insert_scheduled_email(
            conn, reservation_id, EmailType.POST_BOOKING_FOLLOWUP, FIRE_AT, FIRE_AT
        )
        mark_email_sent(conn, sent, NOW, "msg-1")

        rows = list_due_emails(conn, NOW, 10)

    assert [row["id"] for row in rows] == [due]


@pytest.mark.integration
def test_skipped_rows_do_not_block_rescheduling(engine: Engine, email_id: str) -> None:
    with engine.begin() as conn:
        row = get_scheduled_email(conn, email_id)
        assert row is not None
        assert find_blocking_email(conn, row["reservation_id"], EmailType.POST_BOOKING_FOLLOWUP)

        skip_pending_emails(conn, row["reservation_id"], NOW, "cancelled")

        assert not find_blocking_email(conn, row["reservation_id"], EmailType.POST_BOOKING_FOLLOWUP)
