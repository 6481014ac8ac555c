import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from reservation_sync.models.webhook_events import WebhookEvent


def record_webhook_event(
    conn: Connection,
    connection_id: str,
    event_type: str,
    payload: dict[str, Any],
    now: datetime,
) -> str:
    """
    Append an inbound event to the audit log as unprocessed.

    Returns:
        str: The event row ID, used to mark the outcome later.
    """
    event_id = str(uuid.uuid4())
    conn.execute(
        insert(WebhookEvent).values(
            id=event_id,
            connection_id=connection_id,
            event_type=event_type,
            payload=payload,
            processed=False,
            received_at=now,
        )
    )
    return event_id


def mark_event_processed(conn: Connection, event_id: str, now: datetime) -> None:
    conn.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == event_id)
        .values(processed=True, processed_at=now)
    )


def mark_event_failed(conn: Connection, event_id: str, error: str) -> None:
    conn.execute(
        update(WebhookEvent).where(WebhookEvent.id == event_id).values(error_message=error)
    )
