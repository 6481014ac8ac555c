import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.sql import func

from reservation_sync.config import SCHEMA
from reservation_sync.models.base import Base, JSONPayload


class WebhookEvent(Base):
    """
    ORM model for the inbound webhook audit log.

    One row per event received for a known connection, holding the raw payload.
    ``processed`` flips once the event has been applied; ``error_message`` keeps
    the reason when it could not be.
    """

    __tablename__ = "webhook_events"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    connection_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.external_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type = Column(String(128), nullable=False)
    payload = Column(JSONPayload, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
