"""
Metric point storage.

All storage uses DuckDB for analytical reads; MetricStore is the seam for
swapping in another relational backend.
"""

from functools import lru_cache

from feedback_metrics.config import get_settings

from .base import MetricStore
from .duckdb_storage import DuckDBStorage, StorageError


@lru_cache
def get_storage() -> MetricStore:
    """
    Get cached storage backend instance (singleton).

    Returns:
        MetricStore implementation instance
    """
    settings = get_settings()
    return DuckDBStorage(db_path=settings.db_path, batch_size=settings.metrics_batch_size)


__all__ = [
    "MetricStore",
    "DuckDBStorage",
    "StorageError",
    "get_storage",
]
