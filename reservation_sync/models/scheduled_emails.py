import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.sql import func

from reservation_sync.config import SCHEMA
from reservation_sync.models.base import Base


class ScheduledEmail(Base):
    """
    ORM model for one planned follow-up communication.

    Rows are never deleted; once they leave ``scheduled`` they are the audit
    trail of what was sent, skipped or failed. The partial unique index keeps
    at most one ``scheduled`` row per (reservation, email type).
    ``claimed_until`` is the execution lease taken by a runner tick.
    """

    __tablename__ = "scheduled_emails"
    __table_args__ = (
        Index(
            "uq_scheduled_emails_pending",
            "reservation_id",
            "email_type",
            unique=True,
            postgresql_where=text("status = 'scheduled'"),
            sqlite_where=text("status = 'scheduled'"),
        ),
        Index("ix_scheduled_emails_due", "status", "scheduled_at"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reservation_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email_type = Column(String(64), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(32), nullable=False, default="scheduled")
    error_message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    claimed_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
