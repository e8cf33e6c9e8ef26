"""API routers for all endpoints."""

from feedback_metrics.routers import time_series

__all__ = ["time_series"]
