"""
Channel-manager synchronization gateway.

Outbound: push a locally created booking to the property's channel manager,
at most once in flight per reservation and never twice once it succeeded.

Inbound: authenticate webhook calls, resolve their connection, log them and
reconcile booking events into the state machine.
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import Engine

from reservation_sync.config import (
    OCTORATE_WEBHOOK_SECRET,
    PUSH_LEASE_SECONDS,
    WEBHOOK_ALLOWED_IPS,
    WEBHOOK_MAX_TRANSITION_ATTEMPTS,
)
from reservation_sync.db.readers.connections import (
    get_active_connection_by_accommodation,
    get_active_connection_for_property,
    get_external_room_id,
)
from reservation_sync.db.readers.reservations import (
    get_reservation,
    get_reservation_by_external_booking,
)
from reservation_sync.db.writers.reservations import (
    claim_push_lease,
    mark_push_failed,
    mark_push_succeeded,
    mark_sync_confirmed,
)
from reservation_sync.db.writers.webhook_events import (
    mark_event_failed,
    mark_event_processed,
    record_webhook_event,
)
from reservation_sync.exceptions import (
    ExternalSyncFailure,
    InvalidEvent,
    InvalidTransition,
    NotFound,
    ReservationNotFound,
    SchedulingFailure,
    SourceNotAllowed,
    Unauthorized,
)
from reservation_sync.metrics import pushes_total, webhook_events_total
from reservation_sync.models.enums import ExternalSyncStatus, ReservationStatus, TransitionOrigin
from reservation_sync.network.client import OctorateClient
from reservation_sync.schemas.webhooks import InboundEvent
from reservation_sync.services.state_machine import TransitionResult, transition_with_retry
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

INTERNAL_CHANNEL = "internal"

# Provider event name -> internal status
BOOKING_EVENTS: dict[str, ReservationStatus] = {
    "booking_confirmation": ReservationStatus.CONFIRMED,
    "booking_cancellation": ReservationStatus.CANCELLED,
}


@dataclass(frozen=True)
class PushResult:
    reservation_id: str
    channel_manager: str
    external_sync_status: ExternalSyncStatus
    pushed: bool
    external_booking_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class InboundEventResult:
    event_id: Optional[str]
    event_type: str
    action: str
    reservation_id: Optional[str] = None
    status: Optional[str] = None


# =============================================================================
# Outbound
# =============================================================================


def push_booking(
    engine: Engine,
    client: OctorateClient,
    reservation_id: str,
    now: Optional[datetime] = None,
) -> PushResult:
    """
    Push a reservation to its property's channel manager.

    Properties without an active connection are not an error: the result says
    ``channel_manager="internal"``. A reservation already pushed or confirmed,
    or one whose push is in flight elsewhere, returns success without calling
    the channel manager. Failures are recorded as ``external_sync_status=failed``
    and raised; nothing here retries.

    Args:
        engine (Engine): SQLAlchemy engine.
        client (OctorateClient): Channel-manager client.
        reservation_id (str): Internal reservation ID.
        now (Optional[datetime]): Push time, defaults to the current UTC time.

    Returns:
        PushResult: What was done.

    Raises:
        ReservationNotFound: Unknown reservation.
        ExternalSyncFailure: Missing room mapping or failed channel-manager call.
    """
    now = now or utc_now()

    with engine.connect() as conn:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise ReservationNotFound(reservation_id)
        connection = get_active_connection_for_property(conn, reservation["property_id"])

    if connection is None:
        pushes_total.labels(outcome="internal").inc()
        return PushResult(
            reservation_id=reservation_id,
            channel_manager=INTERNAL_CHANNEL,
            external_sync_status=reservation["external_sync_status"],
            pushed=False,
        )

    channel = connection["system_type"]
    if reservation["external_sync_status"] in (ExternalSyncStatus.PUSHED, ExternalSyncStatus.CONFIRMED):
        pushes_total.labels(outcome="already_synced").inc()
        return PushResult(
            reservation_id=reservation_id,
            channel_manager=channel,
            external_sync_status=reservation["external_sync_status"],
            pushed=False,
            external_booking_id=reservation["external_booking_id"],
            detail="already synced",
        )

    with engine.begin() as conn:
        claimed = claim_push_lease(
            conn, reservation_id, now, now + timedelta(seconds=PUSH_LEASE_SECONDS)
        )
    if not claimed:
        # Another caller holds the lease, or finished between our read and the claim.
        with engine.connect() as conn:
            current = get_reservation(conn, reservation_id)
        pushes_total.labels(outcome="in_flight").inc()
        logger.info("booking_push_in_flight", reservation_id=reservation_id)
        return PushResult(
            reservation_id=reservation_id,
            channel_manager=channel,
            external_sync_status=(current or reservation)["external_sync_status"],
            pushed=False,
            external_booking_id=(current or reservation)["external_booking_id"],
            detail="push in flight",
        )

    with engine.connect() as conn:
        external_room_id = get_external_room_id(conn, connection["id"], reservation["room_id"])
    if external_room_id is None:
        _record_push_failure(engine, reservation_id, "room mapping not found")
        raise ExternalSyncFailure(
            reservation_id, f"No room mapping for room {reservation['room_id']}"
        )

    try:
        external_booking_id = client.create_booking(connection, reservation, external_room_id)
    except Exception as exc:
        _record_push_failure(engine, reservation_id, str(exc))
        if isinstance(exc, ExternalSyncFailure):
            raise
        raise ExternalSyncFailure(reservation_id, f"Booking push failed: {exc}") from exc

    with engine.begin() as conn:
        mark_push_succeeded(conn, reservation_id, external_booking_id, utc_now())

    pushes_total.labels(outcome="pushed").inc()
    logger.info(
        "booking_pushed",
        reservation_id=reservation_id,
        connection_id=connection["id"],
        external_booking_id=external_booking_id,
    )
    return PushResult(
        reservation_id=reservation_id,
        channel_manager=channel,
        external_sync_status=ExternalSyncStatus.PUSHED,
        pushed=True,
        external_booking_id=external_booking_id,
    )


def _record_push_failure(engine: Engine, reservation_id: str, error: str) -> None:
    with engine.begin() as conn:
        mark_push_failed(conn, reservation_id, utc_now())
    pushes_total.labels(outcome="failed").inc()
    logger.error("booking_push_failed", reservation_id=reservation_id, error=error)


# =============================================================================
# Inbound
# =============================================================================


def verify_event_source(
    client_ip: Optional[str],
    raw_body: bytes,
    signature: Optional[str],
    allowed_ips: Sequence[str],
    secret: Optional[str],
) -> None:
    """
    Trust boundary for inbound webhooks. Fails closed.

    The caller address must match an allow-list entry (single address or CIDR);
    an empty allow-list admits nobody. When a secret is configured the
    signature header is required and must equal the hex HMAC-SHA256 of the raw
    body, optionally prefixed with ``sha256=``.

    Raises:
        SourceNotAllowed: Caller address is missing or not allow-listed.
        Unauthorized: Signature missing or wrong.
    """
    if not client_ip or not _ip_allowed(client_ip, allowed_ips):
        logger.warning("webhook_source_rejected", client_ip=client_ip)
        raise SourceNotAllowed(f"Source {client_ip} is not allowed")

    if secret:
        if not signature:
            raise Unauthorized("Missing webhook signature")
        provided = signature[7:] if signature.startswith("sha256=") else signature
        computed = hmac.new(
            key=secret.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha256
        ).hexdigest()
        if not hmac.compare_digest(
            provided.strip().lower().encode("utf-8"), computed.encode("ascii")
        ):
            logger.warning("webhook_signature_invalid", client_ip=client_ip)
            raise Unauthorized("Invalid webhook signature")


def _ip_allowed(client_ip: str, allowed_ips: Sequence[str]) -> bool:
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False
    for entry in allowed_ips:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


def parse_inbound_event(raw_body: bytes) -> InboundEvent:
    try:
        return InboundEvent.model_validate_json(raw_body)
    except ValidationError as exc:
        raise InvalidEvent(f"Malformed webhook body: {exc.error_count()} error(s)") from exc


def handle_inbound_event(
    engine: Engine,
    raw_body: bytes,
    client_ip: Optional[str],
    signature: Optional[str],
    now: Optional[datetime] = None,
    allowed_ips: Optional[Sequence[str]] = None,
    secret: Optional[str] = None,
) -> InboundEventResult:
    """
    Authenticate, log and apply one inbound channel-manager event.

    Nothing is written before the source is authenticated and the connection
    resolved. Afterwards every event is stored in ``webhook_events`` and marked
    processed, or annotated with the error that stopped it.

    Booking events move the reservation through the state machine with origin
    ``external_webhook``; redelivered events are absorbed as no-ops. An event
    the state machine rejects (for example a late confirmation after a
    cancellation) is acknowledged and its error recorded, since the provider
    carries no ordering token to resolve it.

    Raises:
        SourceNotAllowed, Unauthorized: Trust-boundary failures.
        InvalidEvent: Malformed body, or a booking event without ``bookingId``.
        NotFound: Unknown accommodation, or unknown booking for the connection.
    """
    now = now or utc_now()
    verify_event_source(
        client_ip,
        raw_body,
        signature,
        WEBHOOK_ALLOWED_IPS if allowed_ips is None else allowed_ips,
        OCTORATE_WEBHOOK_SECRET if secret is None else secret,
    )
    event = parse_inbound_event(raw_body)

    with engine.connect() as conn:
        connection = get_active_connection_by_accommodation(conn, event.accommodation_id)
    if connection is None:
        webhook_events_total.labels(event_type=event.event_type, outcome="unknown_connection").inc()
        raise NotFound(f"No active connection for accommodation {event.accommodation_id}")

    with engine.begin() as conn:
        event_id = record_webhook_event(
            conn, connection["id"], event.event_type, event.payload, now
        )
    log = logger.bind(
        event_id=event_id, event_type=event.event_type, connection_id=connection["id"]
    )

    try:
        result = _apply_event(engine, connection, event, event_id, now)
    except Exception as exc:
        with engine.begin() as conn:
            mark_event_failed(conn, event_id, str(exc))
        webhook_events_total.labels(event_type=event.event_type, outcome="failed").inc()
        log.warning("webhook_event_failed", error=str(exc))
        raise

    with engine.begin() as conn:
        mark_event_processed(conn, event_id, utc_now())
    webhook_events_total.labels(event_type=event.event_type, outcome=result.action).inc()
    log.info("webhook_event_processed", action=result.action, reservation_id=result.reservation_id)
    return result


def _apply_event(
    engine: Engine,
    connection: dict[str, Any],
    event: InboundEvent,
    event_id: str,
    now: datetime,
) -> InboundEventResult:
    target = BOOKING_EVENTS.get(event.event_type)
    if target is None:
        return InboundEventResult(event_id=event_id, event_type=event.event_type, action="ignored")

    booking_id = event.payload.get("bookingId")
    if not booking_id:
        raise InvalidEvent(f"{event.event_type} event without bookingId")

    with engine.connect() as conn:
        reservation = get_reservation_by_external_booking(
            conn, connection["property_id"], str(booking_id)
        )
    if reservation is None:
        raise NotFound(f"No reservation for external booking {booking_id}")
    reservation_id = reservation["id"]

    try:
        outcome: TransitionResult = transition_with_retry(
            engine,
            reservation_id,
            target,
            TransitionOrigin.EXTERNAL_WEBHOOK,
            WEBHOOK_MAX_TRANSITION_ATTEMPTS,
            now,
        )
    except InvalidTransition as exc:
        with engine.begin() as conn:
            mark_event_failed(conn, event_id, str(exc))
        return InboundEventResult(
            event_id=event_id,
            event_type=event.event_type,
            action="rejected",
            reservation_id=reservation_id,
            status=exc.current,
        )
    except SchedulingFailure as exc:
        # Status change is committed; keep the email failure on the audit row.
        with engine.begin() as conn:
            mark_event_failed(conn, event_id, str(exc))
        outcome = exc.result

    if target == ReservationStatus.CONFIRMED and (
        outcome.applied or reservation["external_sync_status"] != ExternalSyncStatus.CONFIRMED
    ):
        with engine.begin() as conn:
            mark_sync_confirmed(conn, reservation_id, now)

    return InboundEventResult(
        event_id=event_id,
        event_type=event.event_type,
        action="transitioned" if outcome.applied else "noop",
        reservation_id=reservation_id,
        status=outcome.status.value,
    )
