"""SQLAlchemy models for property links to external channel managers."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.sql import func

from reservation_sync.config import SCHEMA
from reservation_sync.models.base import Base


class ExternalConnection(Base):
    """
    ORM model for one property's link to a channel manager.

    Each connection holds the OAuth tokens used to call the channel manager on
    behalf of the property. At most one active and connected row may exist per
    (property, system type); the partial unique index enforces it.
    """

    __tablename__ = "external_connections"
    __table_args__ = (
        Index(
            "uq_external_connections_active",
            "property_id",
            "system_type",
            unique=True,
            postgresql_where=text("is_active AND is_connected"),
            sqlite_where=text("is_active AND is_connected"),
        ),
        Index("ix_external_connections_accommodation", "external_accommodation_id"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_id = Column(String(64), nullable=False, index=True)
    system_type = Column(String(32), nullable=False, default="octorate")
    external_accommodation_id = Column(String(128), nullable=False)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_connected = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ExternalRoomMapping(Base):
    """Maps an internal room to the channel manager's room type for one connection."""

    __tablename__ = "external_room_mappings"
    __table_args__ = (
        Index("uq_room_mappings_connection_room", "connection_id", "room_id", unique=True),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    connection_id = Column(
        String(36),
        ForeignKey(f"{SCHEMA}.external_connections.id", ondelete="CASCADE"),
        nullable=False,
    )
    room_id = Column(String(64), nullable=False)
    external_room_id = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
