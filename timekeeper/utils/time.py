"""Clock and duration formatting helpers."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    MongoDB hands back naive UTC datetimes, so everything stored or compared
    by the services uses the same representation.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def seconds_between(start: datetime, end: datetime) -> int:
    """
    Whole seconds elapsed from start to end.

    Args:
        start: Start time
        end: End time

    Returns:
        Elapsed seconds, floored, never negative
    """
    delta = to_naive_utc(end) - to_naive_utc(start)
    return max(0, int(delta.total_seconds()))


def format_duration(seconds: int) -> str:
    """Human readable duration such as ``1h 5m 3s``."""
    if seconds <= 0:
        return "0s"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def format_clock(seconds: int) -> str:
    """Stopwatch style display: ``m:ss`` or ``h:mm:ss``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
