"""Timestamp normalization helpers."""

from datetime import datetime, timezone


def to_naive_utc(ts: datetime) -> datetime:
    """Normalize a timestamp to naive UTC, the representation used in storage."""
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts
