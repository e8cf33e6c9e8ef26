"""
Enumeration types for the feedback metrics engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class Granularity(str, Enum):
    """Bucket width used to truncate metric timestamps."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class QuestionType(str, Enum):
    """
    Declared type of a survey question.

    Unknown type strings coming off the wire resolve to OTHER instead of
    failing validation, so a new question type never aborts a collection run.
    """

    RATING = "rating"
    SCALE = "scale"
    YES_NO = "yes_no"
    TEXT = "text"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    OTHER = "other"

    @classmethod
    def _missing_(cls, value):
        return cls.OTHER

    @property
    def is_choice(self) -> bool:
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE)


class TrendDirection(str, Enum):
    """Direction label shared by series statistics and period comparisons."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class InsightSeverity(str, Enum):
    """Severity of a generated comparison insight."""

    INFO = "info"
    WARNING = "warning"


class MetricType(str, Enum):
    """
    Reserved metric-type vocabulary.

    Collection also generates dynamic keys (question_<id>,
    question_<id>_choice_<slug>, <questiontype>_questions, survey_responses)
    which are plain strings, not members of this enum.
    """

    FEEDBACK_COUNT = "feedback_count"
    AVERAGE_RATING = "average_rating"
    RESPONSE_RATE = "response_rate"
    COMPLETION_RATE = "completion_rate"
    SENTIMENT_SCORE = "sentiment_score"
    QUESTION_SCORE = "question_score"
    QR_SCAN_COUNT = "qr_scan_count"
    CONVERSION_RATE = "conversion_rate"
    RESPONSE_TIME = "response_time"
    CUSTOMER_SATISFACTION = "customer_satisfaction"


SURVEY_RESPONSES_METRIC = "survey_responses"
QUESTION_METRIC_PREFIX = "question_"
CHOICE_METRIC_INFIX = "_choice_"
