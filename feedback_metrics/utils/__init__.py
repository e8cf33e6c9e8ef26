"""Utility modules for logging and timestamp helpers."""

from feedback_metrics.utils.dates import to_naive_utc
from feedback_metrics.utils.logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger", "to_naive_utc"]
