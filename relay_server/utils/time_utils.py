from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return the current time as a naive UTC datetime.

    MongoDB stores datetimes in UTC and pymongo hands them back naive, so
    everything written and compared by the service uses naive UTC values.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a stored datetime as an ISO-8601 UTC string ending in 'Z'."""
    if dt is None:
        return None
    dt = to_naive_utc(dt)
    return dt.isoformat(timespec='milliseconds') + 'Z'


def start_of_week(now: Optional[datetime] = None) -> datetime:
    """Monday 00:00 of the week containing ``now``."""
    now = now or utc_now()
    day = now - timedelta(days=now.weekday())
    return day.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or utc_now()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
