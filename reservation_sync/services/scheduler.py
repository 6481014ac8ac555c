"""
Scheduler runner: one tick of due follow-up email processing.

Ticks may overlap or repeat. Correctness comes from the per-row lease and the
``status = 'scheduled'`` guards in the execution path, not from serializing
the runner.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from reservation_sync.config import EMAIL_BATCH_SIZE, SCHEDULER_MAX_WORKERS
from reservation_sync.db.readers.scheduled_emails import list_due_emails
from reservation_sync.db.writers.scheduled_emails import mark_email_failed
from reservation_sync.metrics import runner_batch_size, runner_duration
from reservation_sync.services.email_sequence import ExecutionOutcome, execute_scheduled_email
from reservation_sync.services.notifications import NotificationSender
from reservation_sync.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class RunSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    already_processed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _run_one(engine: Engine, sender: NotificationSender, email_id: str, now: datetime) -> ExecutionOutcome:
    try:
        return execute_scheduled_email(engine, sender, email_id, now)
    except Exception as exc:
        # Isolate the row: record the error on it and keep the batch going.
        logger.exception("scheduled_email_execution_error", email_id=email_id)
        with engine.begin() as conn:
            mark_email_failed(conn, email_id, utc_now(), f"execution error: {exc}")
        return ExecutionOutcome.FAILED


def run_due_emails(
    engine: Engine,
    sender: NotificationSender,
    now: Optional[datetime] = None,
    batch_size: int = EMAIL_BATCH_SIZE,
    max_workers: int = SCHEDULER_MAX_WORKERS,
) -> RunSummary:
    """
    Execute up to ``batch_size`` due scheduled emails.

    Rows are fanned out over a thread pool; a failure on one row is recorded on
    that row and never aborts the others. Remaining due rows are left for the
    next tick.

    Args:
        engine (Engine): SQLAlchemy engine.
        sender (NotificationSender): Mail delivery.
        now (Optional[datetime]): Tick time, defaults to the current UTC time.
        batch_size (int): Maximum rows per tick.
        max_workers (int): Thread pool size.

    Returns:
        RunSummary: Counts by outcome. ``processed`` counts rows this tick
        moved to sent, failed or skipped.
    """
    now = now or utc_now()
    started = time.time()

    with engine.connect() as conn:
        due = list_due_emails(conn, now, batch_size)
    runner_batch_size.observe(len(due))

    summary = RunSummary()
    if due:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(due)))) as pool:
            futures = [pool.submit(_run_one, engine, sender, row["id"], now) for row in due]
            for future in as_completed(futures):
                outcome = future.result()
                if outcome == ExecutionOutcome.SENT:
                    summary.sent += 1
                elif outcome == ExecutionOutcome.FAILED:
                    summary.failed += 1
                elif outcome == ExecutionOutcome.SKIPPED:
                    summary.skipped += 1
                else:
                    summary.already_processed += 1

    summary.processed = summary.sent + summary.failed + summary.skipped
    runner_duration.observe(time.time() - started)
    logger.info("due_emails_run_complete", due=len(due), **summary.as_dict())
    return summary
