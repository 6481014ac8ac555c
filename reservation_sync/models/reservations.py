# models/reservations.py

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func

from reservation_sync.config import SCHEMA
from reservation_sync.models.base import Base


class Reservation(Base):
    """
    ORM model for a guest's booked stay, the aggregate root of the core.

    ``status`` and ``external_sync_status`` are independent axes: a reservation
    can be confirmed locally while its push to the channel manager failed.
    ``version`` is bumped on every status or date change and is the
    compare-and-swap token for optimistic concurrency. Money is stored in minor
    currency units.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("uq_reservations_property_confirmation", "property_id", "confirmation_number", unique=True),
        Index("ix_reservations_external_booking", "external_booking_id"),
        {"schema": SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    confirmation_number = Column(String(64), nullable=False)
    property_id = Column(String(64), nullable=False, index=True)
    property_name = Column(String(255), nullable=True)
    room_id = Column(String(64), nullable=False)
    guest_id = Column(String(64), nullable=False)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(320), nullable=True)
    channel_id = Column(String(64), nullable=True)

    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    timezone = Column(String(64), nullable=True)
    adults = Column(Integer, nullable=False, default=1)
    children = Column(Integer, nullable=False, default=0)
    infants = Column(Integer, nullable=False, default=0)
    special_requests = Column(Text, nullable=True)

    base_rate = Column(Integer, nullable=False, default=0)
    taxes = Column(Integer, nullable=False, default=0)
    fees = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="EUR")

    status = Column(String(32), nullable=False, default="tentative")
    payment_status = Column(String(32), nullable=False, default="pending")
    external_sync_status = Column(String(32), nullable=False, default="not_synced")
    confirmation_sent = Column(Boolean, nullable=False, default=False)

    external_booking_id = Column(String(128), nullable=True)
    pushed_at = Column(DateTime(timezone=True), nullable=True)
    external_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    push_lease_until = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
