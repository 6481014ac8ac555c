"""UTC and property-local datetime utilities."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from reservation_sync.config import DEFAULT_TIMEZONE


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime read back from the database to aware UTC.

    Some drivers (SQLite) drop the offset on the way back; every timestamp is
    written in UTC, so a naive value is interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def property_zone(tz_name: str | None) -> ZoneInfo:
    """Return the IANA zone for a reservation, falling back to DEFAULT_TIMEZONE."""
    return ZoneInfo(tz_name or DEFAULT_TIMEZONE)


def at_local_hour(day: date, hour: int, zone: ZoneInfo) -> datetime:
    """
    Return ``day`` at ``hour``:00 wall-clock time in ``zone``, converted to UTC.

    Example:
        >>> at_local_hour(date(2025, 6, 4), 10, ZoneInfo("UTC"))
        datetime.datetime(2025, 6, 4, 10, 0, tzinfo=datetime.timezone.utc)
    """
    local = datetime.combine(day, time(hour=hour), tzinfo=zone)
    return local.astimezone(timezone.utc)


def local_midnight(day: date, zone: ZoneInfo) -> datetime:
    """Start of ``day`` in ``zone``, as aware UTC."""
    return at_local_hour(day, 0, zone)


def days_until(moment: datetime, later: datetime) -> int:
    """Whole days from ``moment`` to ``later``, rounded up."""
    delta = later - moment
    whole, remainder = divmod(delta, timedelta(days=1))
    return whole + (1 if remainder else 0)
