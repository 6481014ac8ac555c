"""
FastAPI dependency providers.

Routes receive the engine, the channel-manager client and the mail sender
through these providers; tests replace them with app.dependency_overrides.
The client and sender are built once per process.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Generator

from sqlalchemy.engine import Engine

from reservation_sync.db.engine import engine
from reservation_sync.network.client import OctorateClient
from reservation_sync.services.notifications import MailerSendSender, NotificationSender


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: sqlite_engine
    """
    yield engine


@lru_cache(maxsize=1)
def _channel_client() -> OctorateClient:
    return OctorateClient(engine)


@lru_cache(maxsize=1)
def _mail_sender() -> MailerSendSender:
    return MailerSendSender()


def get_channel_client() -> OctorateClient:
    return _channel_client()


def get_notification_sender() -> NotificationSender:
    return _mail_sender()
