"""
Scheduled jobs: bulk collection across organizations and retention cleanup.

Each organization is collected independently; one organization failing is
logged and does not stop the others. Retention is independent of collection
and needs no coordination with it.
"""

import threading
from typing import Iterable, Optional

import structlog

from feedback_metrics.config import get_settings
from feedback_metrics.errors import MetricsError, OperationCancelled
from feedback_metrics.services.time_series_service import TimeSeriesService

logger = structlog.get_logger()


def collect_all(
    service: TimeSeriesService,
    organization_ids: Iterable[str],
    cancel_event: Optional[threading.Event] = None,
) -> dict[str, Optional[int]]:
    """
    Collect metrics for every organization in turn.

    Args:
        service: Configured time-series service
        organization_ids: Organizations to recompute
        cancel_event: Optional flag; once set, remaining organizations are skipped

    Returns:
        organization_id -> points published, or None if its collection failed
    """
    results: dict[str, Optional[int]] = {}
    for organization_id in organization_ids:
        try:
            results[organization_id] = service.collect_metrics(
                organization_id, cancel_event=cancel_event
            )
        except OperationCancelled:
            logger.warning("collection_job_cancelled", completed=len(results))
            raise
        except MetricsError as e:
            logger.error(
                "organization_collection_failed",
                organization_id=organization_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            results[organization_id] = None

    logger.info(
        "collection_job_completed",
        organizations=len(results),
        failed=sum(1 for r in results.values() if r is None),
    )
    return results


def run_retention(service: TimeSeriesService, retention_days: Optional[int] = None) -> int:
    """Delete metric points older than retention_days (default: settings.retention_days)."""
    if retention_days is None:
        retention_days = get_settings().retention_days
    return service.cleanup_old_metrics(retention_days)
