"""Date helpers. Timestamps are stored as naive UTC throughout."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..config import NOTIFICATION_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, tz_name: str = NOTIFICATION_TIMEZONE) -> datetime:
    """Convert a naive UTC timestamp to the kennel's local wall-clock time"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz_name))


def format_local_date(value: datetime, tz_name: str = NOTIFICATION_TIMEZONE) -> str:
    return to_local(value, tz_name).strftime("%d/%m/%Y")


def format_local_time(value: datetime, tz_name: str = NOTIFICATION_TIMEZONE) -> str:
    return to_local(value, tz_name).strftime("%H:%M")
