"""
API routers for the analytics backend.
"""

from lumist_analytics.routers import acquisition, revenue, sat, social

__all__ = ["acquisition", "revenue", "sat", "social"]
