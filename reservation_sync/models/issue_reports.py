import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.sql import func

from reservation_sync.config import SCHEMA
from reservation_sync.models.base import Base


class IssueReport(Base):
    """
    ORM model for a guest-reported problem with a reservation.

    Written by the feedback forms elsewhere in the platform. The core only
    reads it: an ``open`` report suppresses the post-checkin and post-checkout
    emails.
    """

    __tablename__ = "issue_reports"
    __table_args__ = {"schema": SCHEMA}

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reservation_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    issue_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
