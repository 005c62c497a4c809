"""Date-time helpers for ledger timestamps and trailing windows."""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive timestamp, matching stored columns."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def window_start(days: int, now: datetime | None = None) -> datetime:
    """Return the start of the trailing ``days`` window ending at ``now``."""

    current = now if now is not None else utcnow()
    return current - timedelta(days=days)
