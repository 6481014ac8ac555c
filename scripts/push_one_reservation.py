import argparse

import structlog

from reservation_sync.db.engine import engine
from reservation_sync.logging_config import setup_logging
from reservation_sync.network.client import OctorateClient
from reservation_sync.services.channel_sync import push_booking

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Push (or re-push after a failure) one reservation to its channel manager.
    """
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("reservation_id", help="Internal reservation ID")
    args = parser.parse_args()

    logger.info("manual_push_started", reservation_id=args.reservation_id)

    try:
        result = push_booking(engine, OctorateClient(engine), args.reservation_id)
        logger.info(
            "manual_push_finished",
            reservation_id=args.reservation_id,
            channel_manager=result.channel_manager,
            pushed=result.pushed,
            external_booking_id=result.external_booking_id,
            detail=result.detail,
        )
    except Exception:
        logger.exception("manual_push_failed", reservation_id=args.reservation_id)
        raise


if __name__ == "__main__":
    main()
