# backend/aligner_missions/timeutil.py
from datetime import datetime, date, timezone


def utcnow() -> datetime:
    """Naive UTC 'now'; every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def day_of_week(d: date) -> int:
    # 0=Sunday .. 6=Saturday
    return (d.weekday() + 1) % 7
