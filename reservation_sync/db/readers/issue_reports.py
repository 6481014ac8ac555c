from sqlalchemy import select
from sqlalchemy.engine import Connection

from reservation_sync.models.enums import IssueStatus
from reservation_sync.models.issue_reports import IssueReport


def has_open_issue(conn: Connection, reservation_id: str) -> bool:
    """
    Check whether the guest has an open issue report for the reservation.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (str): Internal reservation ID.

    Returns:
        bool: True if at least one report with status ``open`` exists.
    """
    result = conn.execute(
        select(IssueReport.id)
        .where(IssueReport.reservation_id == reservation_id)
        .where(IssueReport.status == IssueStatus.OPEN.value)
        .limit(1)
    )
    return result.fetchone() is not None
