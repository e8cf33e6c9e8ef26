"""
Exception hierarchy for the feedback metrics engine.

Engines raise these; the HTTP layer maps them to status codes.
"""


class MetricsError(Exception):
    """Base exception for all metrics engine failures."""

    pass


class NotFound(MetricsError):
    """An organization or question could not be resolved by a collaborator."""

    pass


class MetricsValidationError(MetricsError):
    """Malformed date range, unknown granularity or empty metric selection."""

    pass


class DependencyFailure(MetricsError):
    """Storage unreachable, or a batch write aborted mid-sequence."""

    pass


class OperationCancelled(MetricsError):
    """The caller cancelled a long-running collection or query."""

    pass
