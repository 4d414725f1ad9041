"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

# Message rows are stamped in the operator's local time, not UTC
RECORD_TIMEZONE = ZoneInfo("Asia/Kolkata")
RECORD_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def record_timestamp(now: datetime | None = None) -> str:
    """Format a message creation time as 'YYYY-MM-DD HH:MM:SS' in IST."""
    moment = now or utc_now()
    return moment.astimezone(RECORD_TIMEZONE).strftime(RECORD_FORMAT)


def iso_utc(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = (now or utc_now()).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
