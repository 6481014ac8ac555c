"""
Unit tests for network/auth.py token management.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from reservation_sync.cache import token_cache
from reservation_sync.exceptions import ExternalSyncFailure
from reservation_sync.network.auth import (
    get_access_token,
    get_or_refresh_token,
    refresh_access_token,
    request_token_refresh,
)
from reservation_sync.utils.datetime import utc_now


def _engine_with(mock_conn: MagicMock) -> MagicMock:
    mock_engine = MagicMock()
    mock_engine.connect.return_value.__enter__.return_value = mock_conn
    mock_engine.begin.return_value.__enter__.return_value = mock_conn
    return mock_engine


@pytest.mark.unit
@patch("reservation_sync.network.auth.requests.post")
def test_request_token_refresh_success(mock_post: Mock) -> None:
    """Test that request_token_refresh posts the refresh grant with a timeout."""
    mock_response = Mock()
    mock_response.ok = True
    mock_response.status_code = 200
    mock_response.json.return_value = {"access_token": "new-token", "expires_in": 3600}
    mock_post.return_value = mock_response

    data = request_token_refresh("refresh-xyz")

    assert data["access_token"] == "new-token"
    mock_post.assert_called_once()
    call_args = mock_post.call_args
    assert call_args[0][0].endswith("/oauth/token")
    assert call_args[1]["data"]["grant_type"] == "refresh_token"
    assert call_args[1]["data"]["refresh_token"] == "refresh-xyz"
    assert call_args[1]["timeout"] > 0


@pytest.mark.unit
@patch("reservation_sync.network.auth.requests.post")
def test_request_token_refresh_raises_on_http_error(mock_post: Mock) -> None:
    mock_response = Mock()
    mock_response.ok = False
    mock_response.status_code = 400
    mock_response.text = "invalid_grant"
    mock_response.raise_for_status.side_effect = requests.HTTPError("400 Error")
    mock_post.return_value = mock_response

    with pytest.raises(requests.HTTPError):
        request_token_refresh("expired-refresh")


@pytest.mark.unit
@patch("reservation_sync.network.auth.requests.post")
def test_request_token_refresh_raises_on_missing_token(mock_post: Mock) -> None:
    mock_response = Mock()
    mock_response.ok = True
    mock_response.status_code = 200
    mock_response.json.return_value = {"error": "something went wrong"}
    mock_post.return_value = mock_response

    with pytest.raises(ExternalSyncFailure, match="No access_token"):
        request_token_refresh("refresh-xyz")


@pytest.mark.unit
@patch("reservation_sync.network.auth.requests.post")
def test_request_token_refresh_propagates_timeout(mock_post: Mock) -> None:
    mock_post.side_effect = requests.Timeout("timed out")

    with pytest.raises(requests.Timeout):
        request_token_refresh("refresh-xyz")


@pytest.mark.unit
@patch("reservation_sync.network.auth.update_tokens")
@patch("reservation_sync.network.auth.request_token_refresh")
@patch("reservation_sync.network.auth.get_connection")
def test_refresh_access_token_stores_and_caches(
    mock_get_connection: Mock, mock_request: Mock, mock_update: Mock
) -> None:
    """Test that refresh_access_token persists the new token and caches it."""
    mock_conn = MagicMock()
    mock_get_connection.return_value = {"id": "conn-1", "refresh_token": "refresh-xyz"}
    mock_request.return_value = {
        "access_token": "new-token",
        "expires_in": 3600,
        "refresh_token": "refresh-rotated",
    }

    token = refresh_access_token(_engine_with(mock_conn), "conn-1")

    assert token == "new-token"
    mock_request.assert_called_once_with("refresh-xyz")
    args, kwargs = mock_update.call_args
    assert args[0] is mock_conn
    assert args[1] == "conn-1"
    assert args[2] == "new-token"
    assert args[3] > utc_now() + timedelta(minutes=59)
    assert kwargs["refresh_token"] == "refresh-rotated"
    assert token_cache.get("conn-1") == "new-token"


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_connection")
def test_refresh_access_token_raises_without_refresh_token(mock_get_connection: Mock) -> None:
    mock_get_connection.return_value = {"id": "conn-1", "refresh_token": None}

    with pytest.raises(ExternalSyncFailure, match="No refresh token"):
        refresh_access_token(_engine_with(MagicMock()), "conn-1")


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_connection")
def test_refresh_access_token_raises_for_unknown_connection(mock_get_connection: Mock) -> None:
    mock_get_connection.return_value = None

    with pytest.raises(ExternalSyncFailure):
        refresh_access_token(_engine_with(MagicMock()), "missing")


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_connection")
def test_get_access_token_returns_existing_token(mock_get_connection: Mock) -> None:
    mock_get_connection.return_value = {
        "access_token": "existing-token",
        "token_expires_at": utc_now() + timedelta(hours=1),
    }

    token = get_access_token(_engine_with(MagicMock()), "conn-1")

    assert token == "existing-token"
    assert token_cache.get("conn-1") == "existing-token"


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_connection")
def test_get_access_token_uses_cache(mock_get_connection: Mock) -> None:
    token_cache.set("conn-1", "cached-token")

    token = get_access_token(_engine_with(MagicMock()), "conn-1")

    assert token == "cached-token"
    mock_get_connection.assert_not_called()


@pytest.mark.unit
@patch("reservation_sync.network.auth.refresh_access_token")
@patch("reservation_sync.network.auth.get_connection")
def test_get_access_token_refreshes_expired_token(
    mock_get_connection: Mock, mock_refresh: Mock
) -> None:
    """Test that an expired stored token is refreshed before use."""
    mock_get_connection.return_value = {
        "access_token": "stale-token",
        "token_expires_at": utc_now() - timedelta(minutes=1),
    }
    mock_refresh.return_value = "refreshed-token"
    mock_engine = _engine_with(MagicMock())

    token = get_access_token(mock_engine, "conn-1")

    assert token == "refreshed-token"
    mock_refresh.assert_called_once_with(mock_engine, "conn-1")


@pytest.mark.unit
@patch("reservation_sync.network.auth.refresh_access_token")
@patch("reservation_sync.network.auth.get_connection")
def test_get_access_token_refreshes_if_missing(
    mock_get_connection: Mock, mock_refresh: Mock
) -> None:
    mock_get_connection.return_value = {"access_token": None, "token_expires_at": None}
    mock_refresh.return_value = "refreshed-token"

    assert get_access_token(_engine_with(MagicMock()), "conn-1") == "refreshed-token"


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_access_token")
def test_get_or_refresh_token_returns_current_token(mock_get_token: Mock) -> None:
    mock_get_token.return_value = "valid-token"
    mock_engine = MagicMock()

    token = get_or_refresh_token(mock_engine, "conn-1")

    assert token == "valid-token"
    mock_get_token.assert_called_once_with(mock_engine, "conn-1")


@pytest.mark.unit
@patch("reservation_sync.network.auth.get_access_token")
@patch("reservation_sync.network.auth.refresh_access_token")
def test_get_or_refresh_token_refreshes_if_matches_prev_token(
    mock_refresh: Mock, mock_get_token: Mock
) -> None:
    """Test that get_or_refresh_token refreshes if the token just failed with 401."""
    mock_get_token.return_value = "failed-token"
    mock_refresh.return_value = "new-token"
    mock_engine = MagicMock()

    token = get_or_refresh_token(mock_engine, "conn-1", prev_token="failed-token")

    assert token == "new-token"
    mock_refresh.assert_called_once_with(mock_engine, "conn-1")
