"""Timestamp truncation to granularity bucket boundaries."""

from datetime import datetime, timedelta

from feedback_metrics.errors import MetricsValidationError
from feedback_metrics.models.enums import Granularity
from feedback_metrics.utils.dates import to_naive_utc


def truncate(ts: datetime, granularity: Granularity) -> datetime:
    """
    Truncate a timestamp to the start of its bucket.

    Weeks start on Monday, matching PostgreSQL/DuckDB date_trunc('week').

    Args:
        ts: Timestamp to truncate (aware timestamps are converted to UTC)
        granularity: Target bucket width

    Returns:
        Naive UTC bucket start

    Raises:
        MetricsValidationError: If granularity is not a known bucket width
    """
    try:
        granularity = Granularity(granularity)
    except ValueError as e:
        raise MetricsValidationError(f"Unknown granularity: {granularity}") from e

    ts = to_naive_utc(ts)
    if granularity == Granularity.HOURLY:
        return ts.replace(minute=0, second=0, microsecond=0)

    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == Granularity.DAILY:
        return day
    if granularity == Granularity.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)
