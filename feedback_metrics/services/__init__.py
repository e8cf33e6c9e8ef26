"""
Business logic layer.
Services orchestrate data access, validation, and domain logic.
"""

from .time_series_service import TimeSeriesService

__all__ = ["TimeSeriesService"]
