"""Channel-manager webhook receiver route."""

from typing import Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from reservation_sync.config import TRUST_FORWARDED_FOR
from reservation_sync.dependencies import get_db_engine, get_notification_sender
from reservation_sync.exceptions import ReservationSyncError
from reservation_sync.models.enums import ReservationStatus
from reservation_sync.routes._errors import status_for
from reservation_sync.routes.reservations import confirm_in_background
from reservation_sync.schemas.webhooks import InboundEventResponse
from reservation_sync.services.channel_sync import handle_inbound_event
from reservation_sync.services.notifications import NotificationSender

router = APIRouter()
logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "x-octorate-signature"


def resolve_client_ip(request: Request) -> Optional[str]:
    """
    Caller address used for the allow-list check.

    The first ``X-Forwarded-For`` hop is only trusted when the service runs
    behind a proxy that sets it (TRUST_FORWARDED_FOR).
    """
    if TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/channel-manager/webhook")
async def receive_channel_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_db_engine),
    sender: NotificationSender = Depends(get_notification_sender),
) -> JSONResponse:
    """
    Handle incoming channel-manager webhook events.

    Expected payload:
        {
            "eventType": "booking_confirmation",
            "accommodationId": "acc-123",
            "payload": {"bookingId": "OCT-987"}
        }

    Responses:
        200 {"success": true, ...} once accepted (including ignored event types
        and redelivered events), 400 malformed body, 401 bad signature,
        403 caller not allow-listed, 404 unknown accommodation or booking,
        500 internal failure.

    A booking the channel manager confirms gets its confirmation email in the
    background.
    """
    raw_body = await request.body()
    client_ip = resolve_client_ip(request)
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = await run_in_threadpool(
            handle_inbound_event, engine, raw_body, client_ip, signature
        )
    except ReservationSyncError as e:
        status_code = status_for(e)
        if status_code >= 500:
            logger.exception("webhook_processing_failed", client_ip=client_ip)
            return JSONResponse(
                status_code=status_code, content={"error": "Internal server error"}
            )
        return JSONResponse(status_code=status_code, content={"error": str(e)})
    except Exception:
        logger.exception("webhook_processing_failed", client_ip=client_ip)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    if result.action == "transitioned" and result.status == ReservationStatus.CONFIRMED.value:
        background_tasks.add_task(confirm_in_background, engine, sender, result.reservation_id)

    return JSONResponse(
        content=InboundEventResponse(
            event_id=result.event_id,
            action=result.action,
            reservation_id=result.reservation_id,
            status=result.status,
        ).model_dump()
    )
