"""
Data models for the analytics backend.

This module contains Pydantic models for:
- Transactions (unified_transactions rows) and list queries
- Revenue aggregates and overview/analytics view models
- Subscriptions and plan breakdowns
- Transaction reports
- SAT test centers
- Social media metrics
- Acquisition: signup conversion, cohorts and referrers
"""

from lumist_analytics.models.acquisition import AcquisitionOverview, Cohort, CohortReport, Referrer
from lumist_analytics.models.report import TransactionReportRequest, TransactionReportResult
from lumist_analytics.models.revenue import (
    ChurnSummary,
    ExchangeRateTable,
    MonthlyRevenueRow,
    RevenueAnalytics,
    RevenueOverview,
)
from lumist_analytics.models.sat import SatDate, SatSeats, TestCenter
from lumist_analytics.models.social import AccountOverview, Audience, DiscordFunnel, DiscordOverview
from lumist_analytics.models.subscription import Subscriber, SubscriptionOverview
from lumist_analytics.models.transaction import (
    Transaction,
    TransactionList,
    TransactionQuery,
    TransactionSummary,
)


def rows_to_models(rows, model):
    """Validate a list of raw rows into model instances."""
    return [model.model_validate(row) for row in rows]


__all__ = [
    "rows_to_models",
    "Transaction",
    "TransactionList",
    "TransactionQuery",
    "TransactionSummary",
    "ChurnSummary",
    "ExchangeRateTable",
    "MonthlyRevenueRow",
    "RevenueAnalytics",
    "RevenueOverview",
    "Subscriber",
    "SubscriptionOverview",
    "TransactionReportRequest",
    "TransactionReportResult",
    "SatDate",
    "SatSeats",
    "TestCenter",
    "AccountOverview",
    "Audience",
    "DiscordFunnel",
    "DiscordOverview",
    "AcquisitionOverview",
    "Cohort",
    "CohortReport",
    "Referrer",
]
