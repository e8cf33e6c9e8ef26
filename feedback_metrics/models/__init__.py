"""
Pydantic v2 data models for the feedback metrics engine.

Model Organization:
    - enums: Granularity, question types, trend and severity labels
    - feedback: Submissions, responses and collaborator records
    - metrics: Stored metric points, series, comparisons and insights

Usage:
    >>> from datetime import datetime
    >>> from feedback_metrics.models import MetricPoint, Granularity
    >>> point = MetricPoint(
    ...     organization_id="org-1",
    ...     account_id="acc-1",
    ...     metric_type="survey_responses",
    ...     metric_name="Total Survey Responses",
    ...     value=12.0,
    ...     count=12,
    ...     timestamp=datetime(2024, 1, 1),
    ...     granularity=Granularity.DAILY,
    ... )
"""

from .enums import (
    CHOICE_METRIC_INFIX,
    QUESTION_METRIC_PREFIX,
    SURVEY_RESPONSES_METRIC,
    Granularity,
    InsightSeverity,
    MetricType,
    QuestionType,
    TrendDirection,
)
from .feedback import AnswerValue, Organization, QuestionMetadata, Response, Submission
from .metrics import (
    ChoiceInfo,
    ChoiceSeries,
    Comparison,
    ComparisonRequest,
    ComparisonResponse,
    DateRange,
    Insight,
    MetricPoint,
    PeriodMetrics,
    Series,
    Statistics,
    TimeSeriesPoint,
    TimeSeriesRequest,
    TimeSeriesResponse,
    TimeSeriesSummary,
)

__all__ = [
    # Enums
    "Granularity",
    "InsightSeverity",
    "MetricType",
    "QuestionType",
    "TrendDirection",
    "SURVEY_RESPONSES_METRIC",
    "QUESTION_METRIC_PREFIX",
    "CHOICE_METRIC_INFIX",
    # Feedback
    "AnswerValue",
    "Organization",
    "QuestionMetadata",
    "Response",
    "Submission",
    # Metrics
    "ChoiceInfo",
    "ChoiceSeries",
    "Comparison",
    "ComparisonRequest",
    "ComparisonResponse",
    "DateRange",
    "Insight",
    "MetricPoint",
    "PeriodMetrics",
    "Series",
    "Statistics",
    "TimeSeriesPoint",
    "TimeSeriesRequest",
    "TimeSeriesResponse",
    "TimeSeriesSummary",
]
