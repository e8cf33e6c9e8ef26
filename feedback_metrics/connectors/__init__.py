"""
Collaborator connectors.

Abstract read contracts for feedback, organization and question data, plus
in-memory implementations.
"""

from .base import FeedbackProvider, OrganizationProvider, QuestionProvider
from .memory import (
    InMemoryFeedbackProvider,
    InMemoryOrganizationProvider,
    InMemoryQuestionProvider,
)

__all__ = [
    "FeedbackProvider",
    "OrganizationProvider",
    "QuestionProvider",
    "InMemoryFeedbackProvider",
    "InMemoryOrganizationProvider",
    "InMemoryQuestionProvider",
]
