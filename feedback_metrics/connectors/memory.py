"""
In-memory collaborator implementations.

Backed by plain dicts; used for local wiring and in the test suite.
"""

import threading
from datetime import datetime
from typing import Iterable, Optional

from feedback_metrics.errors import NotFound
from feedback_metrics.models.feedback import Organization, QuestionMetadata, Submission
from feedback_metrics.utils.dates import to_naive_utc

from .base import FeedbackProvider, OrganizationProvider, QuestionProvider


class InMemoryFeedbackProvider(FeedbackProvider):
    """Submissions held in a list, filtered on read."""

    def __init__(self, submissions: Optional[Iterable[Submission]] = None):
        self._lock = threading.Lock()
        self._submissions: list[Submission] = list(submissions or [])

    def add(self, *submissions: Submission) -> None:
        with self._lock:
            self._submissions.extend(submissions)

    def fetch_recent(self, organization_id: str, limit: int) -> list[Submission]:
        with self._lock:
            matching = [s for s in self._submissions if s.organization_id == organization_id]
        matching.sort(key=lambda s: to_naive_utc(s.created_at), reverse=True)
        return matching[:limit]

    def fetch_by_question(
        self,
        question_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Submission]:
        start, end = to_naive_utc(start), to_naive_utc(end)
        with self._lock:
            return [
                s
                for s in self._submissions
                if start <= to_naive_utc(s.created_at) <= end
                and any(r.question_id == question_id for r in s.responses)
            ]


class InMemoryOrganizationProvider(OrganizationProvider):
    def __init__(self, organizations: Optional[Iterable[Organization]] = None):
        self._organizations = {o.id: o for o in organizations or []}

    def add(self, organization: Organization) -> None:
        self._organizations[organization.id] = organization

    def get_by_id(self, organization_id: str) -> Organization:
        try:
            return self._organizations[organization_id]
        except KeyError:
            raise NotFound(f"Organization {organization_id} not found") from None


class InMemoryQuestionProvider(QuestionProvider):
    def __init__(self, questions: Optional[Iterable[QuestionMetadata]] = None):
        self._questions = {q.id: q for q in questions or []}

    def add(self, question: QuestionMetadata) -> None:
        self._questions[question.id] = question

    def get_by_id(self, question_id: str) -> QuestionMetadata:
        try:
            return self._questions[question_id]
        except KeyError:
            raise NotFound(f"Question {question_id} not found") from None
