from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Get current UTC datetime as a timezone-aware datetime.

    Returns:
        datetime: Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Get current UTC datetime as a naive datetime (no timezone info).
    Timestamps are stored naive in UTC.

    Returns:
        datetime: Current UTC datetime without timezone info
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """
    Convert a datetime object to naive UTC (no timezone info).

    Args:
        dt: Datetime object to convert; naive values are assumed to already be UTC

    Returns:
        datetime: Naive UTC datetime
    """
    if dt.tzinfo is None:
        return dt
    utc_dt = dt.astimezone(timezone.utc)
    return utc_dt.replace(tzinfo=None)


def local_date(dt: datetime, zone: str = "UTC") -> date:
    """
    Calendar date of an instant as seen in the given time zone.

    Args:
        dt: Instant to convert; naive values are assumed to be UTC
        zone: IANA time zone name

    Returns:
        date: The calendar date in that zone
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(zone)).date()


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    """Naive UTC instant before which expired notifications may be purged."""
    return to_naive_utc(now) - timedelta(days=retention_days)
