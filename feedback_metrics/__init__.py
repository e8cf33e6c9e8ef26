"""Feedback metrics engine: collection, aggregation and period comparison."""

__version__ = "0.1.0"
