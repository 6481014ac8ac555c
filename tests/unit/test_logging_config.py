"""
Unit tests for the structlog processors.
"""

from __future__ import annotations

import pytest

from reservation_sync.logging_config import redact_guest_emails


@pytest.mark.unit
def test_redact_guest_emails_keeps_domain() -> None:
    event = redact_guest_emails(
        None, "info", {"event": "mail_sent", "recipient": "ana.popescu@example.com"}
    )

    assert event["recipient"] == "***@example.com"
    assert event["event"] == "mail_sent"


@pytest.mark.unit
def test_redact_guest_emails_ignores_non_strings() -> None:
    event = redact_guest_emails(None, "info", {"count": 3, "ids": ["a@b.co"]})

    assert event == {"count": 3, "ids": ["a@b.co"]}
