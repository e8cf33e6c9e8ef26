"""
Metric collection, aggregation and comparison engines.

This package contains the analytical core of the feedback metrics service:

- Answer aggregation: raw submissions → daily metric points per question type
- Sentiment scoring: lexicon-based polarity for free-text answers
- Query: stored daily points re-bucketed to hourly/daily/weekly/monthly series
- Statistics: summary statistics and linear-regression trend classification
- Comparison: period-over-period deltas and threshold-based insights

All engine components take their collaborators by dependency injection and
keep grouping state local to a single call.
"""

__all__ = [
    "AGGREGATORS",
    "AggregationQueryEngine",
    "AnswerAggregator",
    "ComparisonEngine",
    "calculate_trend",
    "register_aggregator",
    "score_sentiment",
    "summarize",
    "truncate",
]

from feedback_metrics.engine.aggregator import AnswerAggregator
from feedback_metrics.engine.bucketing import truncate
from feedback_metrics.engine.comparison import ComparisonEngine
from feedback_metrics.engine.query import AggregationQueryEngine
from feedback_metrics.engine.question_types import AGGREGATORS, register_aggregator
from feedback_metrics.engine.sentiment import score_sentiment
from feedback_metrics.engine.statistics import calculate_trend, summarize
