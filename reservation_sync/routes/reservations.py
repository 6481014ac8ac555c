from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from jinja2 import TemplateError
from sqlalchemy.engine import Engine

from reservation_sync.dependencies import (
    get_channel_client,
    get_db_engine,
    get_notification_sender,
)
from reservation_sync.exceptions import (
    ExternalSyncFailure,
    ReservationSyncError,
    SchedulingFailure,
    SendFailure,
)
from reservation_sync.models.enums import ReservationStatus, TransitionOrigin
from reservation_sync.network.client import OctorateClient
from reservation_sync.routes._errors import to_http_exception
from reservation_sync.schemas.reservations import (
    DateChangePayload,
    ReservationCreatePayload,
    ReservationOut,
    TransitionPayload,
)
from reservation_sync.services.booking_confirmation import send_booking_confirmation
from reservation_sync.services.channel_sync import PushResult, push_booking
from reservation_sync.services.notifications import NotificationSender
from reservation_sync.services.reservations import (
    change_dates,
    create_reservation,
    get_reservation_snapshot,
)
from reservation_sync.services.state_machine import TransitionResult, transition

logger = structlog.get_logger(__name__)
router = APIRouter()

SCHEDULING_WARNING = "Email sequence could not be updated; operators have been alerted in logs"


def _serialize_reservation(snapshot: dict[str, Any]) -> dict[str, Any]:
    return ReservationOut.model_validate(snapshot).model_dump(mode="json")


def _serialize_transition(result: TransitionResult) -> dict[str, Any]:
    return {
        "reservation_id": result.reservation_id,
        "previous_status": result.previous_status.value,
        "status": result.status.value,
        "applied": result.applied,
        "version": result.version,
        "scheduled_emails": len(result.scheduled_email_ids),
        "skipped_emails": result.skipped_email_count,
    }


def _serialize_push(result: PushResult) -> dict[str, Any]:
    body = asdict(result)
    body["external_sync_status"] = result.external_sync_status.value
    return body


def push_in_background(engine: Engine, client: OctorateClient, reservation_id: str) -> None:
    """
    Push a newly created booking after the response is sent.

    A failure is already recorded as ``external_sync_status=failed`` on the
    reservation; it is logged here for operators and re-pushed on request.
    """
    try:
        push_booking(engine, client, reservation_id)
    except ExternalSyncFailure as e:
        logger.warning("background_push_failed", reservation_id=reservation_id, error=str(e))


def confirm_in_background(engine: Engine, sender: NotificationSender, reservation_id: str) -> None:
    """Send the booking confirmation email after the response is sent."""
    try:
        send_booking_confirmation(engine, sender, reservation_id)
    except (SendFailure, TemplateError) as e:
        logger.warning(
            "background_confirmation_failed", reservation_id=reservation_id, error=str(e)
        )


@router.post("/reservations", status_code=status.HTTP_201_CREATED)
def create_reservation_endpoint(
    payload: ReservationCreatePayload,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    client: OctorateClient = Depends(get_channel_client),
) -> dict[str, Any]:
    """
    Create a reservation in ``tentative``, schedule its follow-up emails and
    push it to the property's channel manager in the background.

    Args:
        payload: Reservation data
        background_tasks: FastAPI background task runner
        engine: Database engine
        client: Channel-manager client

    Returns:
        dict: The stored reservation with its scheduled emails
    """
    warning = None
    try:
        data = payload.model_dump()
        data["payment_status"] = payload.payment_status.value
        reservation = create_reservation(engine, data)
    except SchedulingFailure as e:
        reservation = e.result
        warning = SCHEDULING_WARNING
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("reservation_creation_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    background_tasks.add_task(push_in_background, engine, client, reservation["id"])

    body = _serialize_reservation(get_reservation_snapshot(engine, reservation["id"]))
    if warning:
        body["warning"] = warning
    return body


@router.get("/reservations/{reservation_id}")
def get_reservation_endpoint(
    reservation_id: str,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Reservation snapshot including the scheduled-email audit trail."""
    try:
        return _serialize_reservation(get_reservation_snapshot(engine, reservation_id))
    except ReservationSyncError as e:
        raise to_http_exception(e)


@router.post("/reservations/{reservation_id}/transitions")
def transition_endpoint(
    reservation_id: str,
    payload: TransitionPayload,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    sender: NotificationSender = Depends(get_notification_sender),
) -> dict[str, Any]:
    """
    Apply an internal status change.

    Returns 409 for an edge outside the adjacency table or a lost version check.
    If the status committed but the email sequence could not be updated the
    response is still 200, with a ``warning``. A booking that becomes confirmed
    gets its confirmation email in the background.
    """
    warning = None
    try:
        result = transition(engine, reservation_id, payload.target_status, TransitionOrigin.INTERNAL)
    except SchedulingFailure as e:
        result = e.result
        warning = SCHEDULING_WARNING
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("reservation_transition_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    if result.applied and result.status == ReservationStatus.CONFIRMED:
        background_tasks.add_task(confirm_in_background, engine, sender, reservation_id)

    body = _serialize_transition(result)
    if warning:
        body["warning"] = warning
    return body


@router.patch("/reservations/{reservation_id}/dates")
def change_dates_endpoint(
    reservation_id: str,
    payload: DateChangePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """Move the stay dates and recompute the pending follow-up emails."""
    warning = None
    try:
        change_dates(
            engine,
            reservation_id,
            payload.check_in,
            payload.check_out,
            expected_version=payload.expected_version,
        )
    except SchedulingFailure:
        warning = SCHEDULING_WARNING
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("reservation_date_change_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    body = _serialize_reservation(get_reservation_snapshot(engine, reservation_id))
    if warning:
        body["warning"] = warning
    return body


@router.post("/reservations/{reservation_id}/push")
def push_endpoint(
    reservation_id: str,
    engine: Engine = Depends(get_db_engine),
    client: OctorateClient = Depends(get_channel_client),
) -> dict[str, Any]:
    """
    Push (or re-push after a failure) a reservation to its channel manager.

    Returns 502 when the channel manager call fails; the reservation then shows
    ``external_sync_status=failed``.
    """
    try:
        return _serialize_push(push_booking(engine, client, reservation_id))
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_push_endpoint_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/reservations/{reservation_id}/confirmation-email")
def confirmation_email_endpoint(
    reservation_id: str,
    engine: Engine = Depends(get_db_engine),
    sender: NotificationSender = Depends(get_notification_sender),
) -> dict[str, Any]:
    """
    Send the booking confirmation now, e.g. after a background send failed.

    ``sent`` is false when it already went out or the reservation is not
    confirmed. Returns 502 when the mail provider rejects the message.
    """
    try:
        sent = send_booking_confirmation(engine, sender, reservation_id)
    except ReservationSyncError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception("booking_confirmation_endpoint_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"reservation_id": reservation_id, "sent": sent}
