"""
Comparison & Insight Engine: period-over-period deltas for metric types.

Each metric type present in period 1 is aggregated into a PeriodMetrics per
period, compared, labelled with a trend, and flagged with an Insight when the
change is large enough to act on.
"""

import threading
from collections import Counter
from datetime import datetime
from typing import Optional

import structlog

from feedback_metrics.config import get_settings
from feedback_metrics.connectors.base import FeedbackProvider
from feedback_metrics.models.enums import (
    QUESTION_METRIC_PREFIX,
    InsightSeverity,
    MetricType,
    QuestionType,
    TrendDirection,
)
from feedback_metrics.models.metrics import (
    ChoiceInfo,
    Comparison,
    ComparisonRequest,
    Insight,
    MetricPoint,
    PeriodMetrics,
    TimeSeriesPoint,
)

from .query import AggregationQueryEngine, check_cancelled
from .question_types import choice_slug, extract_choices

logger = structlog.get_logger()

# Question types whose period value is the mean of daily values, not the sum
AVERAGED_QUESTION_TYPES = {QuestionType.RATING, QuestionType.SCALE, QuestionType.YES_NO}

# metric_type -> (change_percent below which to recommend, recommendation)
RECOMMENDATIONS = {
    MetricType.AVERAGE_RATING.value: (
        -10.0,
        "Review recent feedback to identify areas of concern",
    ),
    MetricType.FEEDBACK_COUNT.value: (
        -20.0,
        "Consider increasing customer engagement efforts",
    ),
    MetricType.COMPLETION_RATE.value: (
        -15.0,
        "Simplify the feedback process to improve completion rates",
    ),
}

TOP_CHOICES = 3


class ComparisonEngine:
    """
    Compares two explicit time windows per metric type and derives insights.

    Attributes:
        query_engine: Reads the daily points of each window
        feedback: Optional raw feedback source for choice distributions
    """

    def __init__(
        self,
        query_engine: AggregationQueryEngine,
        feedback: Optional[FeedbackProvider] = None,
    ):
        self.query_engine = query_engine
        self.feedback = feedback
        self.settings = get_settings()
        self.logger = structlog.get_logger()

    def compare(
        self,
        request: ComparisonRequest,
        cancel_event: Optional[threading.Event] = None,
    ) -> tuple[list[Comparison], list[Insight]]:
        """
        Compare period 1 against period 2.

        Args:
            request: Comparison parameters (both windows inclusive)
            cancel_event: Optional caller-supplied cancellation flag

        Returns:
            (comparisons ordered by metric_type, insights)
        """
        check_cancelled(cancel_event, "comparison")
        period1 = self._group_by_type(self._fetch(request, request.period1_start, request.period1_end))
        check_cancelled(cancel_event, "comparison")
        period2 = self._group_by_type(self._fetch(request, request.period2_start, request.period2_end))

        comparisons = []
        for metric_type in sorted(period1):
            period1_points = period1[metric_type]
            comparison = Comparison(
                metric_type=metric_type,
                metric_name=period1_points[0].metric_name,
                period1=self.aggregate_period(
                    period1_points, request.period1_start, request.period1_end
                ),
                period2=PeriodMetrics(start_date=request.period2_start, end_date=request.period2_end),
                metadata=period1_points[0].metadata,
            )

            period2_points = period2.get(metric_type)
            if period2_points:
                comparison.period2 = self.aggregate_period(
                    period2_points, request.period2_start, request.period2_end
                )
                comparison.change = comparison.period2.value - comparison.period1.value
                if comparison.period1.value != 0:
                    comparison.change_percent = comparison.change / comparison.period1.value * 100
                comparison.trend = self.determine_trend(comparison.change_percent)
            else:
                comparison.trend = TrendDirection.DECLINING

            comparisons.append(comparison)

        insights = self.generate_insights(comparisons)

        self.logger.info(
            "periods_compared",
            organization_id=request.organization_id,
            comparisons=len(comparisons),
            insights=len(insights),
        )
        return comparisons, insights

    def _fetch(self, request: ComparisonRequest, start: datetime, end: datetime) -> list[MetricPoint]:
        return self.query_engine.fetch(
            request.organization_id,
            start,
            end,
            metric_types=request.metric_types,
            product_id=request.product_id,
            question_id=request.question_id,
        )

    @staticmethod
    def _group_by_type(points: list[MetricPoint]) -> dict[str, list[MetricPoint]]:
        grouped: dict[str, list[MetricPoint]] = {}
        for point in points:
            grouped.setdefault(point.metric_type, []).append(point)
        return grouped

    def aggregate_period(
        self,
        points: list[MetricPoint],
        start_date: datetime,
        end_date: datetime,
    ) -> PeriodMetrics:
        """
        Fold one metric type's points in a window into a PeriodMetrics.

        The period value is the sum of point values, except for rating,
        scale and yes/no questions where it is their average.
        """
        if not points:
            return PeriodMetrics(start_date=start_date, end_date=end_date)

        values = [p.value for p in points]
        total = sum(values)
        average = total / len(values)
        question_type = QuestionType(points[0].metadata.get("question_type", QuestionType.OTHER))

        period = PeriodMetrics(
            start_date=start_date,
            end_date=end_date,
            value=average if question_type in AVERAGED_QUESTION_TYPES else total,
            count=sum(p.count for p in points),
            average=average,
            min=min(values),
            max=max(values),
            data_points=[
                TimeSeriesPoint(timestamp=p.timestamp, value=p.value, count=p.count)
                for p in points
            ],
        )

        question_id = points[0].question_id
        if (
            question_type.is_choice
            and question_id
            and points[0].metric_type == f"{QUESTION_METRIC_PREFIX}{question_id}"
        ):
            self._add_choice_distribution(period, question_id, question_type)

        return period

    def _add_choice_distribution(
        self,
        period: PeriodMetrics,
        question_id: str,
        question_type: QuestionType,
    ) -> None:
        """Recount a choice question's options from the raw submissions in the window."""
        if self.feedback is None:
            return

        try:
            submissions = self.feedback.fetch_by_question(
                question_id, period.start_date, period.end_date
            )
        except Exception as e:
            self.logger.error(
                "choice_distribution_failed",
                question_id=question_id,
                start_date=period.start_date.isoformat(),
                end_date=period.end_date.isoformat(),
                error=str(e),
            )
            return

        # Keyed by slug so the distribution lines up with the stored choice metrics.
        distribution: Counter = Counter()
        labels: dict[str, str] = {}
        for submission in submissions:
            for response in submission.responses:
                if response.question_id != question_id:
                    continue
                for choice in extract_choices(question_type, response.answer):
                    slug = choice_slug(choice)
                    labels.setdefault(slug, choice)
                    distribution[labels[slug]] += 1

        ranked = sorted(distribution.items(), key=lambda item: (-item[1], item[0]))
        top = [ChoiceInfo(choice=choice, count=count) for choice, count in ranked[:TOP_CHOICES]]

        period.choice_distribution = dict(distribution)
        period.most_popular_choice = top[0] if top else None
        period.top_choices = top

    def determine_trend(self, change_percent: float) -> TrendDirection:
        """Label a change percent as stable, improving or declining."""
        if abs(change_percent) < self.settings.comparison_stable_percent:
            return TrendDirection.STABLE
        if change_percent > 0:
            return TrendDirection.IMPROVING
        return TrendDirection.DECLINING

    def generate_insights(self, comparisons: list[Comparison]) -> list[Insight]:
        """Flag every comparison whose |change_percent| exceeds the insight threshold."""
        insights = []
        for comparison in comparisons:
            magnitude = abs(comparison.change_percent)
            if magnitude <= self.settings.insight_threshold_percent:
                continue

            severity = (
                InsightSeverity.WARNING
                if magnitude > self.settings.insight_warning_percent
                else InsightSeverity.INFO
            )

            recommendation = None
            rule = RECOMMENDATIONS.get(comparison.metric_type)
            if rule is not None and comparison.change_percent < rule[0]:
                recommendation = rule[1]

            insights.append(
                Insight(
                    severity=severity,
                    message=(
                        f"{comparison.metric_name} has changed by "
                        f"{comparison.change_percent:.1f}% between periods"
                    ),
                    metric_type=comparison.metric_type,
                    change=comparison.change_percent,
                    recommendation=recommendation,
                )
            )
        return insights
