"""
Integration tests for the scheduler trigger endpoint.
"""

from __future__ import annotations

from typing import Callable

import pytest
from fastapi.testclient import TestClient

RUN_URL = "/api/v1/scheduler/run"


@pytest.fixture
def confirmed_reservation(api_client: TestClient, make_reservation: Callable[..., str]) -> str:
    """A confirmed 2025 stay: every follow-up email is already due."""
    reservation_id = make_reservation()
    response = api_client.post(
        f"/api/v1/reservations/{reservation_id}/transitions", json={"target_status": "confirmed"}
    )
    assert response.status_code == 200
    return reservation_id


@pytest.mark.integration
def test_run_sends_due_emails(api_client: TestClient, confirmed_reservation: str, fake_sender) -> None:  # type: ignore[no-untyped-def]
    """Test one tick sends every due email and a second tick finds nothing."""
    first = api_client.post(RUN_URL)
    second = api_client.get(RUN_URL)

    assert first.status_code == 200
    assert first.json() == {"processed": 3, "sent": 3, "failed": 0, "skipped": 0}
    assert second.json() == {"processed": 0, "sent": 0, "failed": 0, "skipped": 0}
    assert len([m for m in fake_sender.sent if "email-sequence" in m.tags]) == 3

    emails = api_client.get(f"/api/v1/reservations/{confirmed_reservation}").json()[
        "scheduled_emails"
    ]
    assert {e["status"] for e in emails} == {"sent"}


@pytest.mark.integration
def test_run_without_due_emails(api_client: TestClient) -> None:
    response = api_client.post(RUN_URL)

    assert response.status_code == 200
    assert response.json()["processed"] == 0


@pytest.mark.integration
def test_run_requires_secret_when_configured(
    api_client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("reservation_sync.routes.scheduler.CRON_SECRET", "cron-s3cret")

    missing = api_client.post(RUN_URL)
    wrong = api_client.post(RUN_URL, headers={"Authorization": "Bearer nope"})
    non_ascii = api_client.post(RUN_URL, headers={"Authorization": "Bearer é".encode("utf-8")})
    valid = api_client.post(RUN_URL, headers={"Authorization": "Bearer cron-s3cret"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert non_ascii.status_code == 401
    assert valid.status_code == 200


@pytest.mark.integration
def test_run_accepts_platform_scheduler_header(
    api_client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("reservation_sync.routes.scheduler.CRON_SECRET", "cron-s3cret")

    response = api_client.get(RUN_URL, headers={"x-vercel-cron": "1"})

    assert response.status_code == 200


@pytest.mark.integration
def test_run_records_send_failures(
    api_client: TestClient, confirmed_reservation: str, fake_sender  # type: ignore[no-untyped-def]
) -> None:
    fake_sender.fail = True

    response = api_client.post(RUN_URL)

    assert response.json() == {"processed": 3, "sent": 0, "failed": 3, "skipped": 0}
    emails = api_client.get(f"/api/v1/reservations/{confirmed_reservation}").json()[
        "scheduled_emails"
    ]
    assert all(e["error_message"] for e in emails)
