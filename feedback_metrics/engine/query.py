"""
Aggregation Query Engine: stored daily points re-bucketed on read.

Every point read from the store is truncated to the requested granularity.
Points of the same (metric_type, product_id, question_id) landing in one
bucket are combined: value is the mean of the contributing values, count is
the sum of their counts. Buckets without data are left out, never zero-filled.
"""

import threading
from collections import defaultdict
from datetime import datetime
from typing import Optional

import structlog

from feedback_metrics.errors import OperationCancelled
from feedback_metrics.models.enums import CHOICE_METRIC_INFIX, QUESTION_METRIC_PREFIX, Granularity
from feedback_metrics.models.metrics import (
    ChoiceSeries,
    MetricPoint,
    Series,
    TimeSeriesPoint,
    TimeSeriesRequest,
)
from feedback_metrics.storage.base import MetricStore

from .bucketing import truncate
from .question_types import choice_label
from .statistics import summarize

logger = structlog.get_logger()


def check_cancelled(cancel_event: Optional[threading.Event], operation: str) -> None:
    """Raise OperationCancelled if the caller has set its cancellation flag."""
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("operation_cancelled", operation=operation)
        raise OperationCancelled(f"{operation} cancelled")


def rebucket(points: list[MetricPoint], granularity: Granularity) -> dict[tuple, list[MetricPoint]]:
    """
    Combine points sharing (metric_type, product_id, question_id, bucket).

    Returns:
        Combined points grouped by (metric_type, product_id), each group
        ordered by timestamp
    """
    buckets: dict[tuple, list[MetricPoint]] = defaultdict(list)
    for point in points:
        bucket = truncate(point.timestamp, granularity)
        buckets[(point.metric_type, point.product_id, point.question_id, bucket)].append(point)

    grouped: dict[tuple, list[MetricPoint]] = defaultdict(list)
    for (metric_type, product_id, question_id, bucket), members in buckets.items():
        first = members[0]
        grouped[(metric_type, product_id)].append(
            first.model_copy(
                update={
                    "value": sum(p.value for p in members) / len(members),
                    "count": sum(p.count for p in members),
                    "timestamp": bucket,
                    "granularity": granularity,
                }
            )
        )

    for members in grouped.values():
        members.sort(key=lambda p: p.timestamp)
    return grouped


def _series_points(points: list[MetricPoint]) -> list[TimeSeriesPoint]:
    return [TimeSeriesPoint(timestamp=p.timestamp, value=p.value, count=p.count) for p in points]


class AggregationQueryEngine:
    """
    Reads stored metric points and shapes them into per-series results.

    Attributes:
        store: Metric store holding the daily points
    """

    def __init__(self, store: MetricStore):
        self.store = store
        self.logger = structlog.get_logger()

    def fetch(
        self,
        organization_id: str,
        start_date: datetime,
        end_date: datetime,
        metric_types: Optional[list[str]] = None,
        product_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> list[MetricPoint]:
        """
        Read the daily points of a window.

        The window start is widened to its day bucket so a range starting
        mid-day still includes that day's point.
        """
        return self.store.find(
            organization_id,
            truncate(start_date, Granularity.DAILY),
            end_date,
            Granularity.DAILY,
            metric_types=metric_types,
            product_id=product_id,
            question_id=question_id,
        )

    def query(
        self,
        request: TimeSeriesRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[Series]:
        """
        Build one Series per (metric_type, product_id) for the request window.

        Args:
            request: Time-series query parameters
            cancel_event: Optional caller-supplied cancellation flag

        Returns:
            Series ordered by (metric_type, product_id)

        Raises:
            OperationCancelled: If cancel_event is set before the read
            StorageError: If the store read fails
        """
        check_cancelled(cancel_event, "time_series_query")

        points = self.fetch(
            request.organization_id,
            request.start_date,
            request.end_date,
            metric_types=request.metric_types,
            product_id=request.product_id,
            question_id=request.question_id,
        )
        grouped = rebucket(points, request.granularity)

        series = []
        for (metric_type, product_id), members in sorted(
            grouped.items(), key=lambda item: (item[0][0], item[0][1] or "")
        ):
            series_points = _series_points(members)
            series.append(
                Series(
                    metric_type=metric_type,
                    metric_name=members[0].metric_name,
                    product_id=product_id,
                    question_id=members[0].question_id,
                    points=series_points,
                    statistics=summarize(series_points),
                    metadata=members[0].metadata,
                )
            )

        check_cancelled(cancel_event, "time_series_query")
        self._attach_choice_series(request, series)

        self.logger.info(
            "time_series_queried",
            organization_id=request.organization_id,
            granularity=request.granularity.value,
            rows=len(points),
            series=len(series),
        )
        return series

    def _attach_choice_series(self, request: TimeSeriesRequest, series: list[Series]) -> None:
        """Load per-choice breakdowns for every requested choice question series."""
        for question_series in series:
            metric_type = question_series.metric_type
            if not metric_type.startswith(QUESTION_METRIC_PREFIX) or CHOICE_METRIC_INFIX in metric_type:
                continue

            prefix = f"{metric_type}{CHOICE_METRIC_INFIX}"
            choice_types = self.store.list_metric_types(request.organization_id, prefix)
            if not choice_types:
                continue

            choice_points = self.fetch(
                request.organization_id,
                request.start_date,
                request.end_date,
                metric_types=choice_types,
                product_id=question_series.product_id,
                question_id=request.question_id,
            )
            grouped = rebucket(
                [p for p in choice_points if p.product_id == question_series.product_id],
                request.granularity,
            )

            for (choice_type, _), members in sorted(grouped.items(), key=lambda item: item[0][0]):
                label = members[0].metadata.get("choice_option") or choice_label(
                    choice_type[len(prefix):]
                )
                points = _series_points(members)
                question_series.choice_series.append(
                    ChoiceSeries(choice=label, points=points, statistics=summarize(points))
                )
