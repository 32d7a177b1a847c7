"""
Custom exception classes for the analytics backend.

Defines specific error types for different failure scenarios.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base exception for all analytics backend errors."""

    pass


class DataStoreError(AnalyticsError):
    """Raised when a query against the data store fails."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.table = table


class EdgeFunctionError(AnalyticsError):
    """Raised when a remote edge function fails or reports an unsuccessful response."""

    def __init__(self, message: str, function_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.function_name = function_name


class ReportError(AnalyticsError):
    """Raised when a transaction report request cannot be satisfied."""

    pass
