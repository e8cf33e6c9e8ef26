"""
Trend/Statistics Engine: summary statistics and linear trend for a series.

Trend is an ordinary least-squares fit (scipy.stats.linregress) of value
against the point's ordinal position in the sequence, not its timestamp.
Gaps between buckets therefore do not stretch the x axis: a series with a
missing week has the same slope as the gap-free one.
"""

import math
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from feedback_metrics.config import get_settings
from feedback_metrics.models.enums import TrendDirection
from feedback_metrics.models.metrics import Statistics, TimeSeriesPoint


def calculate_trend(
    values: Sequence[float],
    stable_slope: Optional[float] = None,
) -> tuple[TrendDirection, float]:
    """
    Classify the linear trend of a value sequence.

    Args:
        values: Values in series order
        stable_slope: |slope| below which the series is stable
            (default: settings.trend_stable_slope)

    Returns:
        (direction, strength) where strength is |R^2| in [0, 1]
    """
    if len(values) < 2:
        return TrendDirection.STABLE, 0.0

    y = np.asarray(values, dtype=np.float64)
    if np.ptp(y) == 0:
        return TrendDirection.STABLE, 0.0

    if stable_slope is None:
        stable_slope = get_settings().trend_stable_slope

    x = np.arange(len(y), dtype=np.float64)
    result = stats.linregress(x, y)
    slope = float(result.slope)

    if abs(slope) < stable_slope:
        direction = TrendDirection.STABLE
    elif slope > 0:
        direction = TrendDirection.IMPROVING
    else:
        direction = TrendDirection.DECLINING

    r_squared = float(result.rvalue) ** 2
    if math.isnan(r_squared):
        return TrendDirection.STABLE, 0.0

    return direction, abs(r_squared)


def summarize(points: Sequence[TimeSeriesPoint]) -> Statistics:
    """
    Compute summary statistics and trend for an ordered point sequence.

    Args:
        points: Points ordered by timestamp

    Returns:
        Statistics; all zeros and stable for an empty sequence
    """
    if not points:
        return Statistics()

    values = [p.value for p in points]
    total = float(sum(values))
    direction, strength = calculate_trend(values)

    return Statistics(
        total=total,
        average=total / len(values),
        min=float(min(values)),
        max=float(max(values)),
        count=sum(p.count for p in points),
        trend_direction=direction,
        trend_strength=strength,
    )
