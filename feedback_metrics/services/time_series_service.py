"""
Time-series service orchestrating collection, queries and comparisons.

This module is the public entry point of the metrics engine:
1. Collection: recompute an organization's daily metric points and publish
   them as one atomic replace
2. Time series: validate a query, re-bucket stored points, summarize
3. Comparison: validate two windows, compare them, derive insights
4. Retention: delete points older than a cutoff across all organizations

The service is designed to be called by:
- API endpoints for on-demand collection and reads
- Scheduled jobs (see feedback_metrics.jobs) for bulk collection and retention
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from feedback_metrics.connectors.base import (
    FeedbackProvider,
    OrganizationProvider,
    QuestionProvider,
)
from feedback_metrics.engine.aggregator import AnswerAggregator
from feedback_metrics.engine.comparison import ComparisonEngine
from feedback_metrics.engine.query import AggregationQueryEngine, check_cancelled
from feedback_metrics.errors import MetricsValidationError
from feedback_metrics.models.metrics import (
    ComparisonRequest,
    ComparisonResponse,
    DateRange,
    Series,
    TimeSeriesRequest,
    TimeSeriesResponse,
    TimeSeriesSummary,
)
from feedback_metrics.storage.base import MetricStore
from feedback_metrics.utils.dates import to_naive_utc

logger = structlog.get_logger()


def _validate_window(start: datetime, end: datetime, label: str) -> None:
    if to_naive_utc(start) > to_naive_utc(end):
        raise MetricsValidationError(
            f"{label} start {start.isoformat()} is after end {end.isoformat()}"
        )


class TimeSeriesService:
    """
    Orchestrates the metric engines against a store and feedback collaborators.

    Attributes:
        store: Metric store receiving recomputed points
        aggregator: Turns raw submissions into daily points
        query_engine: Re-buckets stored points into series
        comparison_engine: Compares periods and derives insights
    """

    def __init__(
        self,
        store: MetricStore,
        feedback: FeedbackProvider,
        organizations: OrganizationProvider,
        questions: QuestionProvider,
        submission_limit: Optional[int] = None,
    ):
        """
        Initialize the time-series service.

        Args:
            store: Metric store for persistence
            feedback: Raw submission source
            organizations: Organization lookup
            questions: Question metadata lookup
            submission_limit: Most recent submissions read per collection run
        """
        self.store = store
        self.aggregator = AnswerAggregator(
            feedback, organizations, questions, submission_limit=submission_limit
        )
        self.query_engine = AggregationQueryEngine(store)
        self.comparison_engine = ComparisonEngine(self.query_engine, feedback=feedback)

    def collect_metrics(
        self,
        organization_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Recompute and publish every daily metric point of an organization.

        Running it twice on unchanged input leaves an identical set.

        Args:
            organization_id: Organization to recompute
            cancel_event: Optional caller-supplied cancellation flag

        Returns:
            Number of points published

        Raises:
            NotFound: If the organization cannot be resolved
            DependencyFailure: If the store write fails
            OperationCancelled: If cancel_event is set before publishing
        """
        started_at = datetime.now(timezone.utc)
        check_cancelled(cancel_event, "metric_collection")

        points = self.aggregator.collect(organization_id)
        written = self.store.replace_all(organization_id, points, cancel_event=cancel_event)

        logger.info(
            "metrics_collected",
            organization_id=organization_id,
            points=written,
            duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds(),
        )
        return written

    def get_time_series(
        self,
        request: TimeSeriesRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> TimeSeriesResponse:
        """
        Query stored points as per-series results with a summary.

        Raises:
            MetricsValidationError: If the range or metric selection is malformed
            DependencyFailure: If the store read fails
        """
        if not request.metric_types:
            raise MetricsValidationError("At least one metric type is required")
        _validate_window(request.start_date, request.end_date, "Range")

        series = self.query_engine.query(request, cancel_event=cancel_event)

        return TimeSeriesResponse(
            request=request,
            series=series,
            summary=TimeSeriesSummary(
                total_data_points=sum(len(s.points) for s in series),
                date_range=DateRange(start=request.start_date, end=request.end_date),
                granularity=request.granularity,
                metrics_summary=self._metrics_summary(series),
            ),
        )

    @staticmethod
    def _metrics_summary(series: list[Series]) -> dict[str, float]:
        """Average point value per metric type across all of its series."""
        values: dict[str, list[float]] = {}
        for s in series:
            values.setdefault(s.metric_type, []).extend(p.value for p in s.points)
        return {
            metric_type: sum(vals) / len(vals)
            for metric_type, vals in values.items()
            if vals
        }

    def get_comparison(
        self,
        request: ComparisonRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> ComparisonResponse:
        """
        Compare two windows and derive insights.

        Raises:
            MetricsValidationError: If either window is malformed
            DependencyFailure: If the store read fails
        """
        _validate_window(request.period1_start, request.period1_end, "Period 1")
        _validate_window(request.period2_start, request.period2_end, "Period 2")

        comparisons, insights = self.comparison_engine.compare(request, cancel_event=cancel_event)
        return ComparisonResponse(request=request, comparisons=comparisons, insights=insights)

    def cleanup_old_metrics(self, retention_days: int) -> int:
        """
        Delete points older than retention_days, across all organizations.

        Raises:
            MetricsValidationError: If retention_days is negative
            DependencyFailure: If the store delete fails
        """
        if retention_days < 0:
            raise MetricsValidationError("retention_days must be non-negative")

        cutoff = to_naive_utc(datetime.now(timezone.utc)) - timedelta(days=retention_days)
        deleted = self.store.delete_older_than(cutoff)

        logger.info(
            "old_metrics_cleaned_up",
            retention_days=retention_days,
            cutoff=cutoff.isoformat(),
            deleted=deleted,
        )
        return deleted
