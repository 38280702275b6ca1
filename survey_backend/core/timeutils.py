from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a timestamp to an aware UTC datetime.

    Naive values are assumed to already be UTC. SQLite hands back naive
    datetimes even for ``DateTime(timezone=True)`` columns, and schedule times
    posted by clients are expected in UTC, so this is the one place that
    assumption lives.
    """
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
