"""
Services for the analytics backend.

Each service reads rows through a DataStore, reshapes them in memory and
returns the view models of one dashboard page.
"""

from lumist_analytics.services.acquisition_service import AcquisitionService
from lumist_analytics.services.currency import CurrencyConverter, ExchangeRateService
from lumist_analytics.services.preferences import DisplayCurrencyStore
from lumist_analytics.services.report_service import ReportService
from lumist_analytics.services.revenue_service import RevenueService
from lumist_analytics.services.sat_service import SatService
from lumist_analytics.services.social_service import SocialService
from lumist_analytics.services.subscription_service import SubscriptionService
from lumist_analytics.services.transaction_service import TransactionService

__all__ = [
    "AcquisitionService",
    "CurrencyConverter",
    "ExchangeRateService",
    "DisplayCurrencyStore",
    "ReportService",
    "RevenueService",
    "SatService",
    "SocialService",
    "SubscriptionService",
    "TransactionService",
]
