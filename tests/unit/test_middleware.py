"""
Unit tests for middleware components.
"""

from __future__ import annotations

import pytest
import structlog
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from reservation_sync.middleware import RequestIDMiddleware


@pytest.fixture
def app_with_middleware() -> FastAPI:
    """Create FastAPI app with RequestIDMiddleware for testing."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def echo_request_id(request: Request) -> dict[str, str]:
        """Return the request ID from state and from the logging context."""
        bound = structlog.contextvars.get_contextvars()
        return {"request_id": request.state.request_id, "bound": bound.get("request_id", "")}

    return app


@pytest.fixture
def client(app_with_middleware: FastAPI) -> TestClient:
    """FastAPI test client with middleware."""
    return TestClient(app_with_middleware)


@pytest.mark.unit
def test_request_id_middleware_adds_header(client: TestClient) -> None:
    """Test that RequestIDMiddleware adds X-Request-ID header to response."""
    response = client.get("/test")

    assert response.status_code == 200
    assert "X-Request-ID" in response.headers
    assert len(response.headers["X-Request-ID"]) == 36  # UUID length


@pytest.mark.unit
def test_request_id_middleware_matches_header_and_state(client: TestClient) -> None:
    """Test that request ID in header matches request ID in state."""
    response = client.get("/test")

    assert response.headers["X-Request-ID"] == response.json()["request_id"]


@pytest.mark.unit
def test_request_id_bound_into_log_context(client: TestClient) -> None:
    """Test that log lines emitted during the request carry the request ID."""
    response = client.get("/test")

    assert response.json()["bound"] == response.headers["X-Request-ID"]


@pytest.mark.unit
def test_incoming_request_id_is_reused(client: TestClient) -> None:
    response = client.get("/test", headers={"X-Request-ID": "trace-abc"})

    assert response.headers["X-Request-ID"] == "trace-abc"
    assert response.json()["request_id"] == "trace-abc"


@pytest.mark.unit
def test_request_id_middleware_unique_per_request(client: TestClient) -> None:
    """Test that each request gets a unique request ID."""
    response1 = client.get("/test")
    response2 = client.get("/test")

    assert response1.headers["X-Request-ID"] != response2.headers["X-Request-ID"]
