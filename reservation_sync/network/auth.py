from datetime import timedelta
from typing import Any

import requests
import structlog
from sqlalchemy.engine import Engine

from reservation_sync.cache import token_cache
from reservation_sync.config import (
    OCTORATE_API_BASE_URL,
    OCTORATE_CLIENT_ID,
    OCTORATE_CLIENT_SECRET,
    OCTORATE_TIMEOUT_SECONDS,
)
from reservation_sync.db.readers.connections import get_connection
from reservation_sync.db.writers.connections import update_tokens
from reservation_sync.exceptions import ExternalSyncFailure
from reservation_sync.metrics import api_latency, api_requests, token_refreshes
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)
TOKEN_PATH = "/oauth/token"


def request_token_refresh(refresh_token: str) -> dict[str, Any]:
    """
    Exchange a refresh token for a new Octorate access token.

    Args:
        refresh_token (str): Refresh token stored on the connection.

    Returns:
        dict[str, Any]: Token response with ``access_token``, ``expires_in`` and
        optionally a rotated ``refresh_token``.

    Raises:
        requests.RequestException: On transport errors, timeouts or non-2xx responses.
        ExternalSyncFailure: If the response carries no access token.
    """
    payload = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": OCTORATE_CLIENT_ID,
        "client_secret": OCTORATE_CLIENT_SECRET,
    }
    headers = {
        "Content-Type": "application/x-www-form-urlencoded",
        "Cache-Control": "no-cache",
    }

    started = utc_now()
    try:
        response = requests.post(
            f"{OCTORATE_API_BASE_URL}{TOKEN_PATH}",
            data=payload,
            headers=headers,
            timeout=OCTORATE_TIMEOUT_SECONDS,
        )
    except requests.RequestException:
        api_requests.labels(endpoint="oauth/token", status_code="error").inc()
        raise
    api_requests.labels(endpoint="oauth/token", status_code=str(response.status_code)).inc()
    api_latency.labels(endpoint="oauth/token").observe((utc_now() - started).total_seconds())

    if not response.ok:
        logger.error(
            "token_refresh_rejected",
            status_code=response.status_code,
            response_text=response.text[:500],
        )
        response.raise_for_status()

    data = response.json()
    if not isinstance(data.get("access_token"), str):
        raise ExternalSyncFailure(None, "No access_token in Octorate token response")
    return dict(data)


def refresh_access_token(engine: Engine, connection_id: str) -> str:
    """
    Refresh and store a new access token for a connection.

    Invalidates the cached token, calls the token endpoint and persists the new
    token (and rotated refresh token, if any) before caching it.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection_id (str): ExternalConnection ID.

    Returns:
        str: New bearer token.
    """
    token_cache.invalidate(connection_id)

    with engine.connect() as conn:
        connection = get_connection(conn, connection_id)
    if not connection or not connection.get("refresh_token"):
        token_refreshes.labels(outcome="missing_credentials").inc()
        raise ExternalSyncFailure(
            None, f"No refresh token stored for connection_id={connection_id}"
        )

    try:
        data = request_token_refresh(connection["refresh_token"])
    except (requests.RequestException, ExternalSyncFailure):
        token_refreshes.labels(outcome="failure").inc()
        raise

    now = utc_now()
    expires_in = data.get("expires_in")
    expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
    with engine.begin() as conn:
        update_tokens(
            conn,
            connection_id,
            data["access_token"],
            expires_at,
            now,
            refresh_token=data.get("refresh_token"),
        )

    token_cache.set(connection_id, data["access_token"], expires_at)
    token_refreshes.labels(outcome="success").inc()
    logger.info("token_refreshed", connection_id=connection_id, expires_at=str(expires_at))
    return str(data["access_token"])


def get_access_token(engine: Engine, connection_id: str) -> str:
    """
    Get a usable access token for a connection.

    Checks the cache first, then the database. Refreshes when the stored token
    is missing or past ``token_expires_at``.
    """
    cached_token = token_cache.get(connection_id)
    if cached_token:
        logger.debug("token_cache_hit", connection_id=connection_id)
        return cached_token

    logger.debug("token_cache_miss", connection_id=connection_id)

    with engine.connect() as conn:
        connection = get_connection(conn, connection_id)

    token = connection.get("access_token") if connection else None
    expires_at = connection.get("token_expires_at") if connection else None
    if token and (expires_at is None or utc_now() < expires_at):
        token_cache.set(connection_id, token, expires_at)
        return str(token)

    return refresh_access_token(engine, connection_id)


def get_or_refresh_token(engine: Engine, connection_id: str, prev_token: str | None = None) -> str:
    """
    Return a valid token, refreshing if the current one just failed with 401.

    Args:
        engine (Engine): SQLAlchemy engine.
        connection_id (str): ExternalConnection ID.
        prev_token (str | None): Token the channel manager just rejected.

    Returns:
        str: Valid bearer token.
    """
    token = get_access_token(engine, connection_id)

    if prev_token is not None and token == prev_token:
        logger.debug("token_rejected_refreshing", connection_id=connection_id)
        return refresh_access_token(engine, connection_id)

    return token
