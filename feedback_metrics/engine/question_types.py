"""
Per-question-type answer aggregation.

Each QuestionType maps to one aggregator function through AGGREGATORS.
New types are added by decorating a function with register_aggregator
rather than by editing a central branch. Anything without a registered
aggregator falls back to a raw answer count.
"""

import json
from typing import Callable, Optional, Sequence

from feedback_metrics.models.enums import QuestionType
from feedback_metrics.models.feedback import AnswerValue

from .sentiment import score_sentiment

Answers = Sequence[Optional[AnswerValue]]
Aggregator = Callable[[Answers], float]

AGGREGATORS: dict[QuestionType, Aggregator] = {}

YES_STRINGS = {"true", "yes", "1"}

METRIC_NAMES = {
    QuestionType.RATING: "Rating Questions",
    QuestionType.SCALE: "Scale Questions",
    QuestionType.YES_NO: "Yes/No Questions",
    QuestionType.TEXT: "Text Sentiment",
    QuestionType.SINGLE_CHOICE: "Single Choice Questions",
    QuestionType.MULTI_CHOICE: "Multiple Choice Questions",
}


def register_aggregator(*question_types: QuestionType) -> Callable[[Aggregator], Aggregator]:
    """Register the decorated function as the aggregator for the given types."""

    def decorator(func: Aggregator) -> Aggregator:
        for question_type in question_types:
            AGGREGATORS[question_type] = func
        return func

    return decorator


def is_numeric(answer: Optional[AnswerValue]) -> bool:
    # bool is an int subclass; a yes/no answer is never a rating.
    return isinstance(answer, (int, float)) and not isinstance(answer, bool)


@register_aggregator(QuestionType.RATING, QuestionType.SCALE)
def aggregate_numeric(answers: Answers) -> float:
    """Mean of the numeric answers; non-numeric entries are skipped."""
    numeric = [float(a) for a in answers if is_numeric(a)]
    if not numeric:
        return 0.0
    return sum(numeric) / len(numeric)


def is_yes(answer: Optional[AnswerValue]) -> bool:
    if isinstance(answer, bool):
        return answer
    if isinstance(answer, str):
        return answer.strip().lower() in YES_STRINGS
    if is_numeric(answer):
        return answer == 1
    return False


@register_aggregator(QuestionType.YES_NO)
def aggregate_yes_no(answers: Answers) -> float:
    """Percentage of yes answers over all answers in the group."""
    if not answers:
        return 0.0
    yes_count = sum(1 for a in answers if is_yes(a))
    return 100.0 * yes_count / len(answers)


@register_aggregator(QuestionType.TEXT)
def aggregate_text(answers: Answers) -> float:
    """Mean sentiment polarity over non-blank text answers."""
    scores = [score_sentiment(a) for a in answers if isinstance(a, str) and a.strip()]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


@register_aggregator(QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE, QuestionType.OTHER)
def aggregate_count(answers: Answers) -> float:
    """Raw number of answers in the group."""
    return float(len(answers))


def aggregate_answers(question_type: QuestionType, answers: Answers) -> float:
    """Dispatch a group of raw answers to the aggregator for its question type."""
    return AGGREGATORS.get(question_type, aggregate_count)(answers)


def metric_name_for(question_type: QuestionType) -> str:
    return METRIC_NAMES.get(question_type, "Other Questions")


def _clean_choice(choice: str) -> str:
    return choice.strip().strip("\"'")


def extract_choices(question_type: QuestionType, answer: Optional[AnswerValue]) -> list[str]:
    """
    Split a choice answer into its selected options.

    Single-choice answers are one string. Multi-choice answers arrive as a
    list, a JSON array string, or a comma-separated string.
    """
    if question_type == QuestionType.SINGLE_CHOICE:
        if isinstance(answer, str):
            cleaned = _clean_choice(answer)
            return [cleaned] if cleaned else []
        return []

    raw: list = []
    if isinstance(answer, list):
        raw = answer
    elif isinstance(answer, str) and answer.strip():
        try:
            parsed = json.loads(answer)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            raw = [c for c in parsed if isinstance(c, str)]
        else:
            raw = answer.split(",")

    choices = []
    for choice in raw:
        cleaned = _clean_choice(choice)
        if cleaned:
            choices.append(cleaned)
    return choices


def choice_slug(choice: str) -> str:
    """Metric-type suffix for a choice option."""
    return choice.lower().replace(" ", "_")


def choice_label(slug: str) -> str:
    """Display label recovered from a choice metric-type suffix."""
    return slug.replace("_", " ")
