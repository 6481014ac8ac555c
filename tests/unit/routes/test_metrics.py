"""
Unit tests for metrics endpoint.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from reservation_sync.main import app
from reservation_sync.metrics import (
    api_latency,
    api_requests,
    emails_processed,
    pushes_total,
    transitions_total,
)


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client."""
    return TestClient(app)


@pytest.mark.unit
def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    """Test that /metrics endpoint returns Prometheus text format."""
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]


@pytest.mark.unit
def test_metrics_endpoint_contains_custom_metrics(client: TestClient) -> None:
    """Test that /metrics endpoint includes the lifecycle metrics."""
    transitions_total.labels(
        from_status="tentative", to_status="confirmed", origin="internal", outcome="applied"
    ).inc()
    emails_processed.labels(email_type="post_checkin", outcome="sent").inc()
    pushes_total.labels(outcome="pushed").inc()
    api_requests.labels(endpoint="bookings", status_code="201").inc()
    api_latency.labels(endpoint="bookings").observe(0.45)

    content = client.get("/metrics").text

    assert "reservation_sync_transitions_total" in content
    assert "reservation_sync_emails_processed_total" in content
    assert "reservation_sync_pushes_total" in content
    assert "reservation_sync_channel_api_requests_total" in content
    assert "reservation_sync_channel_api_latency_seconds" in content
