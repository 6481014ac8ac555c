import structlog

from reservation_sync.db.engine import engine
from reservation_sync.logging_config import setup_logging
from reservation_sync.services.notifications import MailerSendSender
from reservation_sync.services.scheduler import run_due_emails

# Setup logging
setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    # One tick of due follow-up emails, for cron or a container scheduler
    summary = run_due_emails(engine, MailerSendSender())
    logger.info("due_emails_job_finished", **summary.as_dict())


if __name__ == "__main__":
    main()
