"""
Metric data models for the feedback metrics engine.

This module defines the stored metric point, the query-side series and
statistics, and the period comparison / insight models returned to callers.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import Granularity, InsightSeverity, TrendDirection


class MetricPoint(BaseModel):
    """
    One aggregated observation, the atomic stored unit.

    Per organization the tuple (product_id, question_id, metric_type,
    timestamp, granularity) is unique after a recompute.

    Attributes:
        organization_id: Organization the point belongs to
        account_id: Account owning the organization
        product_id: Product the point is scoped to, if any
        question_id: Question the point is scoped to, if any
        metric_type: Stable machine key (e.g. "question_<id>", "survey_responses")
        metric_name: Display label
        value: Aggregated value
        count: Number of raw observations folded into this point
        timestamp: Bucket start, truncated to the granularity
        granularity: Bucket width
        metadata: Question type, text, scale labels, min/max, choice option
    """

    organization_id: str = Field(description="Organization ID")
    account_id: str = Field(description="Owning account ID")
    product_id: Optional[str] = Field(default=None, description="Product ID")
    question_id: Optional[str] = Field(default=None, description="Question ID")
    metric_type: str = Field(description="Stable machine key")
    metric_name: str = Field(description="Display label")
    value: float = Field(description="Aggregated value")
    count: int = Field(default=0, ge=0, description="Raw observations folded in")
    timestamp: datetime = Field(description="Bucket start")
    granularity: Granularity = Field(default=Granularity.DAILY, description="Bucket width")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Question metadata")


class TimeSeriesPoint(BaseModel):
    """A single bucket inside a series."""

    timestamp: datetime
    value: float
    count: int = 0


class Statistics(BaseModel):
    """Summary statistics and trend classification for a point sequence."""

    total: float = 0.0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0
    trend_direction: TrendDirection = TrendDirection.STABLE
    trend_strength: float = Field(default=0.0, ge=0.0)


class ChoiceSeries(BaseModel):
    """Per-choice sub-series attached to a choice question's series."""

    choice: str
    points: list[TimeSeriesPoint] = Field(default_factory=list)
    statistics: Statistics = Field(default_factory=Statistics)


class Series(BaseModel):
    """Ordered points sharing (metric_type, product_id), with statistics."""

    metric_type: str
    metric_name: str
    product_id: Optional[str] = None
    question_id: Optional[str] = None
    points: list[TimeSeriesPoint] = Field(default_factory=list)
    statistics: Statistics = Field(default_factory=Statistics)
    metadata: dict[str, Any] = Field(default_factory=dict)
    choice_series: list[ChoiceSeries] = Field(default_factory=list)


class DateRange(BaseModel):
    start: datetime
    end: datetime


class TimeSeriesSummary(BaseModel):
    """Response-level summary of a time-series query."""

    total_data_points: int = 0
    date_range: DateRange
    granularity: Granularity
    metrics_summary: dict[str, float] = Field(
        default_factory=dict, description="Average value per metric type"
    )


class TimeSeriesRequest(BaseModel):
    """
    Time-series query parameters.

    Attributes:
        organization_id: Organization to query
        metric_types: Metric types to return (at least one)
        start_date: Inclusive range start
        end_date: Inclusive range end
        granularity: Target bucket width
        product_id: Optional product filter
        question_id: Optional question filter
    """

    organization_id: str
    metric_types: list[str] = Field(default_factory=list)
    start_date: datetime
    end_date: datetime
    granularity: Granularity = Granularity.DAILY
    product_id: Optional[str] = None
    question_id: Optional[str] = None


class TimeSeriesResponse(BaseModel):
    request: TimeSeriesRequest
    series: list[Series] = Field(default_factory=list)
    summary: TimeSeriesSummary


class ChoiceInfo(BaseModel):
    choice: str
    count: int


class PeriodMetrics(BaseModel):
    """
    Aggregate of one metric type over an explicit window.

    An empty PeriodMetrics (no data points) has every numeric field at zero.
    """

    start_date: datetime
    end_date: datetime
    value: float = 0.0
    count: int = 0
    average: float = 0.0
    min: float = 0.0
    max: float = 0.0
    data_points: list[TimeSeriesPoint] = Field(default_factory=list)
    choice_distribution: Optional[dict[str, int]] = None
    most_popular_choice: Optional[ChoiceInfo] = None
    top_choices: Optional[list[ChoiceInfo]] = None


class Comparison(BaseModel):
    """Two PeriodMetrics for the same metric type with the computed delta."""

    metric_type: str
    metric_name: str
    period1: PeriodMetrics
    period2: PeriodMetrics
    change: float = 0.0
    change_percent: float = 0.0
    trend: TrendDirection = TrendDirection.STABLE
    metadata: dict[str, Any] = Field(default_factory=dict)


class Insight(BaseModel):
    """Human-readable flag for a significant period-over-period change."""

    type: str = "significant_change"
    severity: InsightSeverity
    message: str
    metric_type: str
    change: float = Field(description="Change percent that triggered the insight")
    recommendation: Optional[str] = None


class ComparisonRequest(BaseModel):
    """
    Period comparison parameters.

    Both windows are inclusive on each end.
    """

    organization_id: str
    metric_types: list[str] = Field(default_factory=list)
    period1_start: datetime
    period1_end: datetime
    period2_start: datetime
    period2_end: datetime
    product_id: Optional[str] = None
    question_id: Optional[str] = None


class ComparisonResponse(BaseModel):
    request: ComparisonRequest
    comparisons: list[Comparison] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)
