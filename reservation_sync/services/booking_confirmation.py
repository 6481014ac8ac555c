"""
Booking confirmation email, sent once when a reservation becomes confirmed.

``confirmation_sent`` is claimed before the send and released if the send
fails, so concurrent triggers deliver at most one confirmation per booking.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from jinja2 import TemplateError
from sqlalchemy.engine import Engine

from reservation_sync.db.readers.reservations import get_reservation
from reservation_sync.db.writers.reservations import claim_confirmation, release_confirmation
from reservation_sync.exceptions import ReservationNotFound, SendFailure
from reservation_sync.metrics import emails_processed
from reservation_sync.models.enums import ReservationStatus
from reservation_sync.services.email_templates import render_booking_confirmation
from reservation_sync.services.notifications import NotificationSender
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

EMAIL_TYPE = "booking_confirmation"


def send_booking_confirmation(
    engine: Engine,
    sender: NotificationSender,
    reservation_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Email the guest their booking confirmation unless it already went out.

    Args:
        engine (Engine): SQLAlchemy engine.
        sender (NotificationSender): Mail delivery.
        reservation_id (str): Internal reservation ID.
        now (Optional[datetime]): Defaults to the current UTC time.

    Returns:
        bool: True when a confirmation was sent by this call.

    Raises:
        ReservationNotFound: If the reservation does not exist.
        SendFailure: If the provider rejected the message; the flag is cleared.
        TemplateError: If rendering failed; the flag is cleared.
    """
    now = now or utc_now()
    log = logger.bind(reservation_id=reservation_id)

    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
    if reservation is None:
        raise ReservationNotFound(reservation_id)

    if reservation["status"] != ReservationStatus.CONFIRMED:
        log.info("booking_confirmation_skipped", reason=f"reservation {reservation['status'].value}")
        return False
    if not reservation.get("guest_email"):
        log.info("booking_confirmation_skipped", reason="no guest email")
        return False

    with engine.begin() as conn:
        claimed = claim_confirmation(conn, reservation_id, now)
    if not claimed:
        return False

    try:
        receipt = sender.send(render_booking_confirmation(reservation))
    except (SendFailure, TemplateError) as exc:
        with engine.begin() as conn:
            release_confirmation(conn, reservation_id, utc_now())
        log.error("booking_confirmation_failed", error=str(exc))
        emails_processed.labels(email_type=EMAIL_TYPE, outcome="failed").inc()
        raise

    log.info("booking_confirmation_sent", message_id=receipt.message_id)
    emails_processed.labels(email_type=EMAIL_TYPE, outcome="sent").inc()
    return True
