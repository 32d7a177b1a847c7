"""
FastAPI dependency providers.

Stores and services are built lazily and cached for the life of the process;
tests replace them through app.dependency_overrides.
"""

from datetime import date, timedelta
from functools import lru_cache
from typing import Optional, Tuple

from fastapi import HTTPException, Query, status

from lumist_analytics.core.config import settings
from lumist_analytics.db.supabase_client import DataStore, get_social_client, get_supabase_client
from lumist_analytics.services.acquisition_service import AcquisitionService
from lumist_analytics.services.currency import ExchangeRateService
from lumist_analytics.services.preferences import DisplayCurrencyStore
from lumist_analytics.services.report_service import ReportService
from lumist_analytics.services.revenue_service import RevenueService
from lumist_analytics.services.sat_service import SatService
from lumist_analytics.services.social_service import SocialService
from lumist_analytics.services.subscription_service import SubscriptionService
from lumist_analytics.services.transaction_service import TransactionService

DEFAULT_RANGE_DAYS = 30


@lru_cache()
def get_analytics_store() -> DataStore:
    """Revenue views (unified_transactions, churn_summary, ...) of the main project."""
    return DataStore(get_supabase_client(), settings.analytics_schema)


@lru_cache()
def get_rates_store() -> DataStore:
    """daily_exchange_rates lives in the analytics schema of the proxy project."""
    return DataStore(get_social_client(), settings.analytics_schema)


@lru_cache()
def get_social_store() -> DataStore:
    return DataStore(get_social_client(), settings.social_schema)


@lru_cache()
def get_exchange_rate_service() -> ExchangeRateService:
    return ExchangeRateService(get_rates_store())


def get_revenue_service() -> RevenueService:
    return RevenueService(get_analytics_store(), get_exchange_rate_service())


def get_transaction_service() -> TransactionService:
    return TransactionService(get_analytics_store(), get_exchange_rate_service())


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService(get_analytics_store(), get_exchange_rate_service())


def get_acquisition_service() -> AcquisitionService:
    return AcquisitionService(get_analytics_store())


@lru_cache()
def get_report_service() -> ReportService:
    return ReportService(get_analytics_store())


def get_sat_service() -> SatService:
    return SatService(get_social_client())


def get_social_service() -> SocialService:
    return SocialService(get_social_store())


def get_currency_store() -> DisplayCurrencyStore:
    return DisplayCurrencyStore()


def date_range(
    start_date: Optional[date] = Query(None, description="First day (inclusive), defaults to 29 days before end_date"),
    end_date: Optional[date] = Query(None, description="Last day (inclusive), defaults to today"),
) -> Tuple[date, date]:
    """Resolve the requested [start, end] window."""
    end = end_date or date.today()
    start = start_date or end - timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date",
        )
    return start, end
