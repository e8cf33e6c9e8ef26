"""
Collaborator contracts consumed by the metrics engine.

Feedback, organization and question data live in other services. The engine
only depends on these abstract read interfaces, so any backing (HTTP client,
ORM repository, in-memory fixture) can be plugged in.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from feedback_metrics.models.feedback import Organization, QuestionMetadata, Submission


class FeedbackProvider(ABC):
    """Read access to raw feedback submissions."""

    @abstractmethod
    def fetch_recent(self, organization_id: str, limit: int) -> list[Submission]:
        """
        Fetch the most recent submissions for an organization.

        Args:
            organization_id: Organization to read
            limit: Maximum number of submissions, most recent first

        Returns:
            Submissions ordered by created_at descending
        """
        pass

    @abstractmethod
    def fetch_by_question(
        self,
        question_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Submission]:
        """
        Fetch submissions answering a question within [start, end].

        Used to recompute choice distributions for period comparisons.
        """
        pass


class OrganizationProvider(ABC):
    """Read access to organization records."""

    @abstractmethod
    def get_by_id(self, organization_id: str) -> Organization:
        """
        Resolve an organization.

        Raises:
            NotFound: If the organization does not exist
        """
        pass


class QuestionProvider(ABC):
    """Read access to question metadata."""

    @abstractmethod
    def get_by_id(self, question_id: str) -> QuestionMetadata:
        """
        Resolve a question's type, bounds and scale labels.

        Raises:
            NotFound: If the question does not exist
        """
        pass
