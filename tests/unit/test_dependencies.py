"""
Unit tests for FastAPI dependency injection.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from reservation_sync.dependencies import (
    get_channel_client,
    get_db_engine,
    get_notification_sender,
)
from reservation_sync.network.client import OctorateClient
from reservation_sync.services.notifications import MailerSendSender


@pytest.mark.unit
def test_get_db_engine_dependency() -> None:
    """Test that get_db_engine yields the engine instance."""
    engine = next(get_db_engine())

    assert isinstance(engine, Engine)


@pytest.mark.unit
def test_client_and_sender_are_process_singletons() -> None:
    assert isinstance(get_channel_client(), OctorateClient)
    assert get_channel_client() is get_channel_client()
    assert isinstance(get_notification_sender(), MailerSendSender)
    assert get_notification_sender() is get_notification_sender()


@pytest.mark.unit
def test_dependency_injection_can_be_overridden() -> None:
    """Test that dependency can be overridden for testing."""
    app = FastAPI()

    @app.get("/test")
    def engine_url(engine: Engine = Depends(get_db_engine)) -> dict[str, str]:
        return {"url": str(engine.url)}

    mock_engine = Mock(spec=Engine)
    mock_engine.url = "postgresql://mock"
    app.dependency_overrides[get_db_engine] = lambda: mock_engine

    response = TestClient(app).get("/test")

    assert response.json() == {"url": "postgresql://mock"}
