"""
Shared fixtures for the reservation_sync test suite.

Integration tests run against a file-backed SQLite database per test. The
``booking`` schema is a second SQLite file attached on every new connection,
so the models' schema-qualified tables resolve exactly as on PostgreSQL.
"""

from __future__ import annotations

import itertools
import os
import tempfile
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator, Optional
from unittest.mock import MagicMock

_TEST_DIR = tempfile.mkdtemp(prefix="reservation_sync_tests_")

# Must be set before reservation_sync.config is imported anywhere.
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/main.db"
os.environ["ALLOWED_ORIGINS"] = "http://localhost:3000"
os.environ.pop("CRON_SECRET", None)
os.environ.pop("OCTORATE_WEBHOOK_SECRET", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event, update  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from reservation_sync.cache import token_cache  # noqa: E402
from reservation_sync.config import SCHEMA  # noqa: E402
from reservation_sync.db.writers.connections import (  # noqa: E402
    insert_connection,
    upsert_room_mapping,
)
from reservation_sync.db.writers.reservations import insert_reservation  # noqa: E402
from reservation_sync.exceptions import SendFailure  # noqa: E402
from reservation_sync.models.base import Base  # noqa: E402
from reservation_sync.models.connections import ExternalConnection, ExternalRoomMapping  # noqa: E402, F401
from reservation_sync.models.issue_reports import IssueReport  # noqa: E402
from reservation_sync.models.reservations import Reservation  # noqa: E402
from reservation_sync.models.scheduled_emails import ScheduledEmail  # noqa: E402, F401
from reservation_sync.models.webhook_events import WebhookEvent  # noqa: E402, F401
from reservation_sync.network.client import OctorateClient  # noqa: E402
from reservation_sync.services.notifications import EmailMessage, SendReceipt  # noqa: E402

# 2025-06-01 09:00 UTC, the booking time used throughout the suite
BOOKED_AT = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)

_confirmation_numbers = itertools.count(1001)


class FakeSender:
    """Records messages instead of delivering them; ``fail`` makes it reject."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.fail = False
        self._lock = threading.Lock()

    def send(self, message: EmailMessage) -> SendReceipt:
        if self.fail:
            raise SendFailure("provider rejected the message")
        with self._lock:
            self.sent.append(message)
            message_id = f"msg-{len(self.sent)}"
        return SendReceipt(message_id=message_id, recipient=message.to_email)


@pytest.fixture(autouse=True)
def clear_token_cache() -> Generator[None, None, None]:
    """Token cache is process-wide; start every test empty."""
    token_cache.clear()
    yield
    token_cache.clear()


@pytest.fixture
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh SQLite database with the schema attached and all tables created."""
    db_engine = create_engine(f"sqlite:///{tmp_path / 'main.db'}")
    schema_file = tmp_path / f"{SCHEMA}.db"

    @event.listens_for(db_engine, "connect")
    def _attach_schema(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.execute(f"ATTACH DATABASE '{schema_file}' AS {SCHEMA}")

    Base.metadata.create_all(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def channel_client() -> MagicMock:
    """Channel-manager client double; ``create_booking`` returns an external ID."""
    client = MagicMock(spec=OctorateClient)
    client.create_booking.return_value = "OCT-5001"
    return client


def reservation_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "confirmation_number": f"CONF-{next(_confirmation_numbers)}",
        "property_id": "prop-1",
        "property_name": "Casa Verde",
        "room_id": "room-1",
        "guest_id": "guest-1",
        "guest_name": "Ana Popescu",
        "guest_email": "ana@example.com",
        "check_in": date(2025, 6, 10),
        "check_out": date(2025, 6, 12),
        "timezone": "Europe/Bucharest",
        "adults": 2,
        "children": 0,
        "infants": 0,
        "base_rate": 30000,
        "taxes": 2700,
        "fees": 500,
        "currency": "EUR",
        "payment_status": "pending",
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_reservation(engine: Engine) -> Callable[..., str]:
    """
    Insert a reservation directly, without scheduling any email.

    ``status`` and ``external_sync_status`` force the row into a given state.
    """

    def _make(
        status: Optional[str] = None,
        external_sync_status: Optional[str] = None,
        external_booking_id: Optional[str] = None,
        created_at: datetime = BOOKED_AT,
        **overrides: Any,
    ) -> str:
        with engine.begin() as conn:
            reservation_id = insert_reservation(conn, reservation_data(**overrides), created_at)
            forced: dict[str, Any] = {}
            if status:
                forced["status"] = status
            if external_sync_status:
                forced["external_sync_status"] = external_sync_status
            if external_booking_id:
                forced["external_booking_id"] = external_booking_id
            if forced:
                conn.execute(
                    update(Reservation).where(Reservation.id == reservation_id).values(**forced)
                )
        return reservation_id

    return _make


@pytest.fixture
def make_connection(engine: Engine) -> Callable[..., str]:
    """Insert an active Octorate connection, optionally with a room mapping."""

    def _make(
        property_id: str = "prop-1",
        accommodation_id: str = "acc-100",
        room_mapping: Optional[tuple[str, str]] = ("room-1", "RT-77"),
        **overrides: Any,
    ) -> str:
        data = {
            "property_id": property_id,
            "system_type": "octorate",
            "external_accommodation_id": accommodation_id,
            "access_token": "access-abc",
            "refresh_token": "refresh-xyz",
            **overrides,
        }
        with engine.begin() as conn:
            connection_id = insert_connection(conn, data, BOOKED_AT)
            if room_mapping:
                upsert_room_mapping(conn, connection_id, room_mapping[0], room_mapping[1], BOOKED_AT)
        return connection_id

    return _make


@pytest.fixture
def open_issue(engine: Engine) -> Callable[[str], None]:
    def _report(reservation_id: str) -> None:
        with engine.begin() as conn:
            conn.execute(
                IssueReport.__table__.insert().values(
                    id=f"issue-{reservation_id}",
                    reservation_id=reservation_id,
                    issue_type="cleanliness",
                    description="Towels missing",
                    status="open",
                    created_at=BOOKED_AT,
                )
            )

    return _report


@pytest.fixture
def api_client(
    engine: Engine, channel_client: MagicMock, fake_sender: FakeSender
) -> Generator[TestClient, None, None]:
    """TestClient with the engine, channel client and mail sender overridden."""
    from reservation_sync.dependencies import (
        get_channel_client,
        get_db_engine,
        get_notification_sender,
    )
    from reservation_sync.main import app

    app.dependency_overrides[get_db_engine] = lambda: engine
    app.dependency_overrides[get_channel_client] = lambda: channel_client
    app.dependency_overrides[get_notification_sender] = lambda: fake_sender
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
