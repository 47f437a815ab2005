"""Timezone-aware timestamp helpers."""
from datetime import datetime, timezone


def utc_now():
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Treat naive datetimes as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value):
    """Parse an ISO-8601 string (or pass through a datetime) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def hours_between(earlier, later):
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600
