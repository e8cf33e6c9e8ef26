"""
Abstract storage interface for metric points.

This module defines the storage abstraction layer so the engine can run on
DuckDB locally or any relational backend in production without changing
application code.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from feedback_metrics.models.enums import Granularity
from feedback_metrics.models.metrics import MetricPoint


class MetricStore(ABC):
    """
    Abstract base class for metric point persistence.

    Implementations must ensure:
    - A replace is published atomically: readers see the previous set or the
      new set for an organization, never a mix
    - A failed or cancelled replace leaves the previously published set visible
    - Reads are side-effect-free and safe to run concurrently
    """

    @abstractmethod
    def replace_all(
        self,
        organization_id: str,
        points: list[MetricPoint],
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Replace every stored point of an organization with a new set.

        Points are written in fixed-size batches. A failing batch aborts the
        remaining batches.

        Args:
            organization_id: Organization whose set is replaced
            points: Freshly computed points (may be empty)
            cancel_event: Optional caller-supplied cancellation flag

        Returns:
            Number of points written

        Raises:
            StorageError: If any batch or the publish step fails
            OperationCancelled: If cancel_event is set before publishing
        """
        pass

    @abstractmethod
    def find(
        self,
        organization_id: str,
        start_time: datetime,
        end_time: datetime,
        granularity: Granularity,
        metric_types: Optional[list[str]] = None,
        product_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> list[MetricPoint]:
        """
        Read published points of an organization within [start_time, end_time].

        Args:
            organization_id: Organization to read
            start_time: Inclusive lower bound on bucket timestamp
            end_time: Inclusive upper bound on bucket timestamp
            granularity: Stored granularity to read
            metric_types: Optional metric-type filter
            product_id: Optional product filter
            question_id: Optional question filter

        Returns:
            Points ordered by timestamp ascending

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def delete_older_than(self, cutoff: datetime) -> int:
        """
        Delete points with a bucket timestamp before cutoff, across all organizations.

        Returns:
            Number of points deleted

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    def list_metric_types(self, organization_id: str, prefix: str) -> list[str]:
        """
        List distinct published metric types of an organization starting with prefix.

        Raises:
            StorageError: If the read fails
        """
        pass
