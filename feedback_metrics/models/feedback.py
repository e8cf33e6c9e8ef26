"""
Feedback wire models consumed from collaborator services.

Submissions, their per-question responses, and the organization / question
records needed to enrich collected metrics.
"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from .enums import QuestionType

# bool is listed first and every member is strict, so JSON `true` never
# degrades into the integer 1 and `"4"` never coerces into a number.
AnswerValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr, List[StrictStr]]


class Response(BaseModel):
    """
    One answer inside a feedback submission.

    Attributes:
        question_id: Identifier of the answered question, if the question is tracked
        question_text: Question wording at submission time
        question_type: Declared type of the question
        answer: Raw answer value as received on the wire
    """

    question_id: Optional[str] = Field(default=None, description="Answered question ID")
    question_text: str = Field(default="", description="Question wording")
    question_type: QuestionType = Field(
        default=QuestionType.OTHER, description="Declared question type"
    )
    answer: Optional[AnswerValue] = Field(
        default=None, union_mode="smart", description="Raw answer value"
    )


class Submission(BaseModel):
    """
    A single feedback submission made by a customer.

    Attributes:
        id: Submission identifier
        organization_id: Owning organization
        product_id: Product the feedback is about, if any
        product_name: Display name of the product
        created_at: Submission time (UTC)
        responses: Answers in this submission
    """

    id: str = Field(description="Submission identifier")
    organization_id: str = Field(description="Owning organization ID")
    product_id: Optional[str] = Field(default=None, description="Product ID")
    product_name: Optional[str] = Field(default=None, description="Product display name")
    created_at: datetime = Field(description="Submission timestamp")
    responses: List[Response] = Field(default_factory=list, description="Answers")


class Organization(BaseModel):
    """Organization record as returned by the organization provider."""

    id: str
    account_id: str


class QuestionMetadata(BaseModel):
    """Question record as returned by the question provider."""

    id: str
    type: QuestionType = QuestionType.OTHER
    text: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_label: Optional[str] = None
    max_label: Optional[str] = None
