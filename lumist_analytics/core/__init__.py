"""
Core configuration, observability and error types.
"""

from lumist_analytics.core.config import Settings, get_settings, settings
from lumist_analytics.core.exceptions import (
    AnalyticsError,
    DataStoreError,
    EdgeFunctionError,
    ReportError,
)

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "AnalyticsError",
    "DataStoreError",
    "EdgeFunctionError",
    "ReportError",
]
