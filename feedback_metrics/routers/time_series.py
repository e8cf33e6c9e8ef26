"""
Time-series analytics router.

Wired to:
- TimeSeriesService for collection, time-series queries and comparisons
- run_retention for on-demand cleanup
"""

from datetime import datetime
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError

from feedback_metrics.connectors import (
    InMemoryFeedbackProvider,
    InMemoryOrganizationProvider,
    InMemoryQuestionProvider,
)
from feedback_metrics.errors import (
    DependencyFailure,
    MetricsError,
    MetricsValidationError,
    NotFound,
    OperationCancelled,
)
from feedback_metrics.jobs import run_retention
from feedback_metrics.models.enums import Granularity
from feedback_metrics.models.metrics import ComparisonRequest, TimeSeriesRequest
from feedback_metrics.services.time_series_service import TimeSeriesService
from feedback_metrics.storage import get_storage
from feedback_metrics.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()

ERROR_STATUS = [
    (NotFound, 404),
    (MetricsValidationError, 400),
    (OperationCancelled, 409),
    (DependencyFailure, 503),
]


@lru_cache
def get_service() -> TimeSeriesService:
    """
    Get cached time-series service (singleton).

    Wires the configured metric store with in-memory collaborators; deployments
    override this dependency with their own providers.
    """
    return TimeSeriesService(
        store=get_storage(),
        feedback=InMemoryFeedbackProvider(),
        organizations=InMemoryOrganizationProvider(),
        questions=InMemoryQuestionProvider(),
    )


def _http_error(e: MetricsError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(e, error_type):
            return HTTPException(status_code=status_code, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


class ComparisonBody(BaseModel):
    """Two windows to compare for one organization."""

    metric_types: List[str] = []
    period1_start: datetime
    period1_end: datetime
    period2_start: datetime
    period2_end: datetime
    product_id: Optional[str] = None
    question_id: Optional[str] = None


@router.post("/organizations/{organization_id}/collect")
async def collect_metrics(
    organization_id: str,
    service: TimeSeriesService = Depends(get_service),
):
    """
    Recompute and publish an organization's metric points.
    """
    logger.info("collect_metrics_requested", organization_id=organization_id)

    try:
        points = service.collect_metrics(organization_id)
    except MetricsError as e:
        logger.warning("collect_metrics_rejected", organization_id=organization_id, error=str(e))
        raise _http_error(e)

    return {"success": True, "data": {"organization_id": organization_id, "points": points}}


@router.get("/organizations/{organization_id}/time-series")
async def get_time_series(
    organization_id: str,
    start_date: datetime,
    end_date: datetime,
    metric_types: List[str] = Query(default=[]),
    granularity: str = Granularity.DAILY.value,
    product_id: Optional[str] = None,
    question_id: Optional[str] = None,
    service: TimeSeriesService = Depends(get_service),
):
    """
    Get re-bucketed time series with per-series statistics.
    """
    logger.info(
        "time_series_requested",
        organization_id=organization_id,
        metric_types=metric_types,
        granularity=granularity,
    )

    try:
        try:
            request = TimeSeriesRequest(
                organization_id=organization_id,
                metric_types=metric_types,
                start_date=start_date,
                end_date=end_date,
                granularity=granularity,
                product_id=product_id,
                question_id=question_id,
            )
        except ValidationError as e:
            raise MetricsValidationError(f"Invalid time-series request: {e}") from e

        response = service.get_time_series(request)
    except MetricsError as e:
        raise _http_error(e)

    return {"success": True, "data": response.model_dump(mode="json")}


@router.post("/organizations/{organization_id}/compare")
async def compare_periods(
    organization_id: str,
    body: ComparisonBody,
    service: TimeSeriesService = Depends(get_service),
):
    """
    Compare two periods per metric type and derive insights.
    """
    logger.info(
        "comparison_requested",
        organization_id=organization_id,
        metric_types=body.metric_types,
    )

    request = ComparisonRequest(organization_id=organization_id, **body.model_dump())
    try:
        response = service.get_comparison(request)
    except MetricsError as e:
        raise _http_error(e)

    return {"success": True, "data": response.model_dump(mode="json")}


@router.post("/maintenance/cleanup")
async def cleanup_old_metrics(
    retention_days: Optional[int] = Query(default=None, ge=0),
    service: TimeSeriesService = Depends(get_service),
):
    """
    Delete metric points older than the retention window.
    """
    try:
        deleted = run_retention(service, retention_days)
    except MetricsError as e:
        raise _http_error(e)

    return {"success": True, "data": {"deleted": deleted}}
