"""
Pytest configuration and shared fixtures for the feedback metrics test suite.

Provides data factories, an in-memory metric store, in-memory collaborators,
environment isolation, and reusable fixtures across all test types
(unit, integration, property-based).
"""

import os
import tempfile
import threading
import uuid as _uuid
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

# Set testing environment BEFORE importing app
# Use temp path (must not exist - DuckDB creates the file). :memory: causes
# per-connection DB which breaks multi-threaded tests.
_test_db_path = os.path.join(tempfile.gettempdir(), f"feedback_metrics_test_{_uuid.uuid4().hex[:8]}.duckdb")
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path


# ---------------------------------------------------------------------------
# Pydantic model factories, reusable across all test suites
# ---------------------------------------------------------------------------

from feedback_metrics.connectors import (
    InMemoryFeedbackProvider,
    InMemoryOrganizationProvider,
    InMemoryQuestionProvider,
)
from feedback_metrics.errors import OperationCancelled
from feedback_metrics.models import (
    Granularity,
    MetricPoint,
    Organization,
    QuestionMetadata,
    QuestionType,
    Response,
    Submission,
)
from feedback_metrics.services import TimeSeriesService
from feedback_metrics.storage.base import MetricStore

ORG_ID = "org-1"
ACCOUNT_ID = "acc-1"
PRODUCT_ID = "prod-1"
DAY = datetime(2024, 1, 1)


def make_response(
    answer=4,
    question_type: QuestionType = QuestionType.RATING,
    question_id: Optional[str] = "q-rating",
    question_text: str = "How would you rate us?",
) -> Response:
    """Factory function for creating test Response objects."""
    return Response(
        question_id=question_id,
        question_text=question_text,
        question_type=question_type,
        answer=answer,
    )


def make_submission(
    responses: Optional[list[Response]] = None,
    created_at: datetime = DAY + timedelta(hours=12),
    organization_id: str = ORG_ID,
    product_id: Optional[str] = PRODUCT_ID,
    product_name: Optional[str] = "Coffee",
    **overrides,
) -> Submission:
    """Factory function for creating test Submission objects."""
    defaults = dict(
        id=str(uuid4()),
        organization_id=organization_id,
        product_id=product_id,
        product_name=product_name,
        created_at=created_at,
        responses=responses if responses is not None else [make_response()],
    )
    defaults.update(overrides)
    return Submission(**defaults)


def make_point(
    metric_type: str = "average_rating",
    value: float = 4.0,
    timestamp: datetime = DAY,
    count: int = 1,
    product_id: Optional[str] = PRODUCT_ID,
    question_id: Optional[str] = None,
    **overrides,
) -> MetricPoint:
    """Factory function for creating test MetricPoint objects."""
    defaults = dict(
        organization_id=ORG_ID,
        account_id=ACCOUNT_ID,
        product_id=product_id,
        question_id=question_id,
        metric_type=metric_type,
        metric_name=metric_type.replace("_", " ").title(),
        value=value,
        count=count,
        timestamp=timestamp,
        granularity=Granularity.DAILY,
    )
    defaults.update(overrides)
    return MetricPoint(**defaults)


def daily_points(values: list[float], metric_type: str = "average_rating", start: datetime = DAY, **overrides):
    """One point per consecutive day carrying the given values."""
    return [
        make_point(metric_type=metric_type, value=v, timestamp=start + timedelta(days=i), **overrides)
        for i, v in enumerate(values)
    ]


# ---------------------------------------------------------------------------
# Mock store: in-memory MetricStore for pure unit tests
# ---------------------------------------------------------------------------

class MockStore(MetricStore):
    """
    In-memory MetricStore for unit tests.

    Environment isolation, no I/O dependency. Replace publishes the new set
    in one assignment, so readers never see a mix.
    """

    def __init__(self):
        self._points: dict[str, list[MetricPoint]] = {}
        self._lock = threading.Lock()
        self.replace_calls = 0

    def replace_all(self, organization_id, points, cancel_event=None):
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("replace cancelled")
        with self._lock:
            self._points[organization_id] = list(points)
            self.replace_calls += 1
        return len(points)

    def find(
        self,
        organization_id,
        start_time,
        end_time,
        granularity,
        metric_types=None,
        product_id=None,
        question_id=None,
    ):
        with self._lock:
            points = list(self._points.get(organization_id, []))
        results = [
            p
            for p in points
            if start_time <= p.timestamp <= end_time
            and p.granularity == granularity
            and (not metric_types or p.metric_type in metric_types)
            and (not product_id or p.product_id == product_id)
            and (not question_id or p.question_id == question_id)
        ]
        return sorted(results, key=lambda p: (p.timestamp, p.metric_type))

    def delete_older_than(self, cutoff):
        deleted = 0
        with self._lock:
            for organization_id, points in self._points.items():
                kept = [p for p in points if p.timestamp >= cutoff]
                deleted += len(points) - len(kept)
                self._points[organization_id] = kept
        return deleted

    def list_metric_types(self, organization_id, prefix):
        with self._lock:
            points = self._points.get(organization_id, [])
            return sorted({p.metric_type for p in points if p.metric_type.startswith(prefix)})

    def all_points(self, organization_id=ORG_ID) -> list[MetricPoint]:
        return list(self._points.get(organization_id, []))


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_store():
    """Fresh MockStore instance for each test."""
    return MockStore()


@pytest.fixture
def feedback_provider():
    """Empty in-memory feedback provider."""
    return InMemoryFeedbackProvider()


@pytest.fixture
def organization_provider():
    """Organization provider knowing the default test organization."""
    return InMemoryOrganizationProvider([Organization(id=ORG_ID, account_id=ACCOUNT_ID)])


@pytest.fixture
def question_provider():
    """Question provider knowing the default rating question."""
    return InMemoryQuestionProvider(
        [
            QuestionMetadata(
                id="q-rating",
                type=QuestionType.RATING,
                text="How would you rate us?",
                min_value=1,
                max_value=5,
                min_label="Poor",
                max_label="Excellent",
            )
        ]
    )


@pytest.fixture
def service(mock_store, feedback_provider, organization_provider, question_provider):
    """TimeSeriesService over the mock store and in-memory collaborators."""
    return TimeSeriesService(
        store=mock_store,
        feedback=feedback_provider,
        organizations=organization_provider,
        questions=question_provider,
    )


@pytest.fixture
def duckdb_store(tmp_path):
    """DuckDB store on a fresh file with a small batch size."""
    from feedback_metrics.storage.duckdb_storage import DuckDBStorage

    return DuckDBStorage(db_path=str(tmp_path / "metrics.duckdb"), batch_size=3)


@pytest.fixture
def client():
    """FastAPI test client for integration tests."""
    from feedback_metrics.main import app

    with TestClient(app) as c:
        yield c
