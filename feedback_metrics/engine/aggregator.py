"""
Answer Aggregator: raw feedback submissions to daily metric points.

Groups one organization's most recent submissions by day, and within a day
by (product, question type) and by (product, question). Each group is folded
into one MetricPoint using the aggregator registered for its question type.
Choice questions additionally get one point per selected option, and every
day gets a survey_responses point counting that day's submissions.

All grouping state is local to a single collect() call.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import structlog

from feedback_metrics.config import get_settings
from feedback_metrics.connectors.base import (
    FeedbackProvider,
    OrganizationProvider,
    QuestionProvider,
)
from feedback_metrics.models.enums import (
    CHOICE_METRIC_INFIX,
    QUESTION_METRIC_PREFIX,
    SURVEY_RESPONSES_METRIC,
    Granularity,
    QuestionType,
)
from feedback_metrics.models.feedback import AnswerValue, QuestionMetadata, Submission
from feedback_metrics.models.metrics import MetricPoint

from .bucketing import truncate
from .question_types import aggregate_answers, choice_slug, extract_choices, metric_name_for

logger = structlog.get_logger()

UNKNOWN_PRODUCT = "Unknown Product"


@dataclass
class _AnswerGroup:
    question_type: QuestionType
    product_id: Optional[str]
    product_name: str
    question_id: Optional[str] = None
    question_text: str = ""
    question_texts: list[str] = field(default_factory=list)
    answers: list[Optional[AnswerValue]] = field(default_factory=list)


class AnswerAggregator:
    """
    Turns an organization's raw submissions into candidate metric points.

    Attributes:
        feedback: Source of raw submissions
        organizations: Resolves the organization's owning account
        questions: Resolves question metadata for enrichment
        submission_limit: Most recent submissions read per run
    """

    def __init__(
        self,
        feedback: FeedbackProvider,
        organizations: OrganizationProvider,
        questions: QuestionProvider,
        submission_limit: Optional[int] = None,
    ):
        self.feedback = feedback
        self.organizations = organizations
        self.questions = questions
        self.submission_limit = submission_limit or get_settings().collection_submission_limit
        self.logger = structlog.get_logger()

    def collect(self, organization_id: str) -> list[MetricPoint]:
        """
        Compute the full set of daily metric points for an organization.

        Args:
            organization_id: Organization to collect

        Returns:
            Metric points ordered by (timestamp, metric_type, product_id)

        Raises:
            NotFound: If the organization cannot be resolved
        """
        organization = self.organizations.get_by_id(organization_id)
        submissions = self.feedback.fetch_recent(organization_id, self.submission_limit)

        points = self.aggregate(organization_id, organization.account_id, submissions)

        self.logger.info(
            "answers_aggregated",
            organization_id=organization_id,
            submissions=len(submissions),
            points=len(points),
        )
        return points

    def aggregate(
        self,
        organization_id: str,
        account_id: str,
        submissions: list[Submission],
    ) -> list[MetricPoint]:
        """Group submissions and fold every non-empty group into metric points."""
        by_type: dict[tuple, _AnswerGroup] = {}
        by_question: dict[tuple, _AnswerGroup] = {}
        submissions_per_day: dict[datetime, int] = {}

        for submission in submissions:
            day = truncate(submission.created_at, Granularity.DAILY)
            submissions_per_day[day] = submissions_per_day.get(day, 0) + 1

            product_id = submission.product_id
            product_name = submission.product_name or UNKNOWN_PRODUCT

            for response in submission.responses:
                type_key = (day, product_id, response.question_type)
                group = by_type.get(type_key)
                if group is None:
                    group = by_type[type_key] = _AnswerGroup(
                        question_type=response.question_type,
                        product_id=product_id,
                        product_name=product_name,
                    )
                group.answers.append(response.answer)
                if response.question_text not in group.question_texts:
                    group.question_texts.append(response.question_text)

                if not response.question_id:
                    continue

                question_key = (day, product_id, response.question_id)
                group = by_question.get(question_key)
                if group is None:
                    group = by_question[question_key] = _AnswerGroup(
                        question_type=response.question_type,
                        product_id=product_id,
                        product_name=product_name,
                        question_id=response.question_id,
                        question_text=response.question_text,
                    )
                group.answers.append(response.answer)

        base = {"organization_id": organization_id, "account_id": account_id}
        points: list[MetricPoint] = []

        for (day, _, question_type), group in by_type.items():
            if not group.answers:
                continue
            points.append(
                MetricPoint(
                    **base,
                    product_id=group.product_id,
                    metric_type=f"{question_type.value}_questions",
                    metric_name=metric_name_for(question_type),
                    value=aggregate_answers(question_type, group.answers),
                    count=len(group.answers),
                    timestamp=day,
                    granularity=Granularity.DAILY,
                    metadata={
                        "question_type": question_type.value,
                        "question_texts": group.question_texts,
                    },
                )
            )

        question_cache: dict[str, Optional[QuestionMetadata]] = {}
        for (day, _, question_id), group in by_question.items():
            if not group.answers:
                continue
            if question_id not in question_cache:
                question_cache[question_id] = self._resolve_question(question_id)
            metadata = self._question_metadata(group, question_cache[question_id])

            points.append(
                MetricPoint(
                    **base,
                    product_id=group.product_id,
                    question_id=question_id,
                    metric_type=f"{QUESTION_METRIC_PREFIX}{question_id}",
                    metric_name=f"{group.product_name} - {group.question_text}",
                    value=aggregate_answers(group.question_type, group.answers),
                    count=len(group.answers),
                    timestamp=day,
                    granularity=Granularity.DAILY,
                    metadata=metadata,
                )
            )
            if group.question_type.is_choice:
                points.extend(self._choice_points(base, day, group, metadata))

        for day, submission_count in submissions_per_day.items():
            points.append(
                MetricPoint(
                    **base,
                    metric_type=SURVEY_RESPONSES_METRIC,
                    metric_name="Total Survey Responses",
                    value=float(submission_count),
                    count=submission_count,
                    timestamp=day,
                    granularity=Granularity.DAILY,
                )
            )

        points.sort(key=lambda p: (p.timestamp, p.metric_type, p.product_id or ""))
        return points

    def _resolve_question(self, question_id: str) -> Optional[QuestionMetadata]:
        """Look up question metadata; a failed lookup only skips enrichment."""
        try:
            return self.questions.get_by_id(question_id)
        except Exception as e:
            self.logger.warning(
                "question_metadata_unavailable",
                question_id=question_id,
                error=str(e),
            )
            return None

    def _question_metadata(
        self,
        group: _AnswerGroup,
        question: Optional[QuestionMetadata],
    ) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "question_type": group.question_type.value,
            "question_text": group.question_text,
        }
        if question is None:
            return metadata

        if question.min_label:
            metadata["min_label"] = question.min_label
        if question.max_label:
            metadata["max_label"] = question.max_label
        if question.min_value is not None:
            metadata["min_value"] = question.min_value
        if question.max_value is not None:
            metadata["max_value"] = question.max_value
        return metadata

    def _choice_points(
        self,
        base: dict,
        day: datetime,
        group: _AnswerGroup,
        question_metadata: dict[str, Any],
    ) -> list[MetricPoint]:
        """One point per selected option, valued by how often it was picked."""
        # Keyed by slug so "Red" and "red" share one metric type.
        distribution: dict[str, list] = {}
        for answer in group.answers:
            for choice in extract_choices(group.question_type, answer):
                entry = distribution.setdefault(choice_slug(choice), [choice, 0])
                entry[1] += 1

        points = []
        for slug, (choice, count) in distribution.items():
            points.append(
                MetricPoint(
                    **base,
                    product_id=group.product_id,
                    question_id=group.question_id,
                    metric_type=(
                        f"{QUESTION_METRIC_PREFIX}{group.question_id}"
                        f"{CHOICE_METRIC_INFIX}{slug}"
                    ),
                    metric_name=f"{group.product_name} - {group.question_text}: {choice}",
                    value=float(count),
                    count=count,
                    timestamp=day,
                    granularity=Granularity.DAILY,
                    metadata={**question_metadata, "choice_option": choice},
                )
            )
        return points
