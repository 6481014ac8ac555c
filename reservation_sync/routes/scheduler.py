"""Trigger endpoint for the periodic due-email runner."""

import hmac
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.engine import Engine

from reservation_sync.config import CRON_SECRET, CRON_TRUSTED_HEADER
from reservation_sync.dependencies import get_db_engine, get_notification_sender
from reservation_sync.services.notifications import NotificationSender
from reservation_sync.services.scheduler import run_due_emails

logger = structlog.get_logger(__name__)
router = APIRouter()


def is_trigger_authorized(request: Request, secret: Optional[str]) -> bool:
    """
    Accept the platform scheduler's trusted header, else a matching bearer
    secret. With no secret configured the trigger is open (local development).
    """
    if request.headers.get(CRON_TRUSTED_HEADER):
        return True
    if not secret:
        return True
    auth_header = request.headers.get("Authorization") or ""
    expected = f"Bearer {secret}"
    return hmac.compare_digest(auth_header.encode("utf-8"), expected.encode("utf-8"))


@router.api_route("/scheduler/run", methods=["GET", "POST"])
def run_scheduler(
    request: Request,
    engine: Engine = Depends(get_db_engine),
    sender: NotificationSender = Depends(get_notification_sender),
) -> dict[str, int]:
    """
    Run one tick of due follow-up emails.

    Safe to call more often than needed and concurrently.

    Returns:
        dict: ``processed``, ``sent``, ``failed`` and ``skipped`` counts
    """
    if not is_trigger_authorized(request, CRON_SECRET):
        logger.warning("scheduler_trigger_unauthorized")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        summary = run_due_emails(engine, sender)
    except Exception as e:
        logger.exception("scheduler_run_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "processed": summary.processed,
        "sent": summary.sent,
        "failed": summary.failed,
        "skipped": summary.skipped,
    }
