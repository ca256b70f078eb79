"""
Error types for connection metrics aggregation.
"""

from __future__ import annotations


class ConnMetricsError(Exception):
    """Base exception for all connmetrics errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotInitializedError(ConnMetricsError):
    """
    Raised when a mutation is attempted on client metrics before ``init``.

    Servers must not record events until the aggregator has been bound to
    its server set and registry at process startup.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"client metrics not initialized (called {operation})")


class DuplicateMetricError(ConnMetricsError):
    """Raised when a metric name is already held by another metric."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A metric named {name} already exists")


class ConfigError(ConnMetricsError):
    """Raised when an environment setting cannot be parsed."""

    pass
