"""
Revenue API endpoints.

Overview, analytics, transactions (with CSV export), subscriptions, the
e-mailed transaction report, exchange rates and the display-currency preference.
"""

import logging
from datetime import date
from typing import Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel

from lumist_analytics.core.exceptions import DataStoreError, EdgeFunctionError, ReportError
from lumist_analytics.models.revenue import Aggregation, ExchangeRateTable, RevenueAnalytics, RevenueOverview
from lumist_analytics.models.report import TransactionReportRequest, TransactionReportResult
from lumist_analytics.models.subscription import SubscriptionOverview
from lumist_analytics.models.transaction import TransactionList, TransactionQuery
from lumist_analytics.routers.dependencies import (
    date_range,
    get_currency_store,
    get_exchange_rate_service,
    get_report_service,
    get_revenue_service,
    get_subscription_service,
    get_transaction_service,
)
from lumist_analytics.services.currency import ExchangeRateService
from lumist_analytics.services.preferences import DisplayCurrencyStore
from lumist_analytics.services.report_service import ReportService
from lumist_analytics.services.revenue_service import RevenueService
from lumist_analytics.services.subscription_service import SubscriptionService
from lumist_analytics.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter()

DisplayCurrency = Literal["USD", "VND"]


class CurrencyPreference(BaseModel):
    currency: DisplayCurrency


def _upstream_error(e: DataStoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to load data{f' from {e.table}' if e.table else ''}: {e.message}",
    )


def resolve_currency(
    currency: Optional[DisplayCurrency] = Query(None, description="Display currency, defaults to the saved preference"),
    store: DisplayCurrencyStore = Depends(get_currency_store),
) -> str:
    return currency or store.get()


def transaction_query(
    search: Optional[str] = Query(None, description="Substring of order info, transaction id or user id"),
    provider: str = Query("All"),
    status_filter: str = Query("All", alias="status"),
    plan: str = Query("All"),
    sort_key: str = Query("created_at"),
    sort_direction: Literal["asc", "desc"] = Query("desc"),
) -> TransactionQuery:
    return TransactionQuery(
        search=search,
        provider=provider,
        status=status_filter,
        plan=plan,
        sort_key=sort_key,
        sort_direction=sort_direction,
    )


@router.get("/overview", response_model=RevenueOverview)
async def revenue_overview(
    window: Tuple[date, date] = Depends(date_range),
    currency: str = Depends(resolve_currency),
    service: RevenueService = Depends(get_revenue_service),
) -> RevenueOverview:
    """
    KPIs with previous-period deltas, daily revenue with 7-day average,
    provider and plan mix, MRR and churn.

    Raises:
        HTTPException 502: If transactions cannot be loaded
    """
    start, end = window
    try:
        return await service.overview(start, end, currency)
    except DataStoreError as e:
        logger.error(f"Revenue overview failed: {e.message}")
        raise _upstream_error(e)


@router.get("/analytics", response_model=RevenueAnalytics)
async def revenue_analytics(
    window: Tuple[date, date] = Depends(date_range),
    currency: str = Depends(resolve_currency),
    aggregation: Aggregation = Query("daily"),
    service: RevenueService = Depends(get_revenue_service),
) -> RevenueAnalytics:
    start, end = window
    try:
        return await service.analytics(start, end, currency, aggregation)
    except DataStoreError as e:
        logger.error(f"Revenue analytics failed: {e.message}")
        raise _upstream_error(e)


@router.get("/transactions", response_model=TransactionList)
async def list_transactions(
    window: Tuple[date, date] = Depends(date_range),
    currency: str = Depends(resolve_currency),
    query: TransactionQuery = Depends(transaction_query),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionList:
    """
    Filtered and sorted transactions of the range with summary figures.

    Raises:
        HTTPException 400: If the sort column is unknown
        HTTPException 502: If transactions cannot be loaded
    """
    start, end = window
    try:
        return await service.list_transactions(start, end, currency, query)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataStoreError as e:
        logger.error(f"Transaction list failed: {e.message}")
        raise _upstream_error(e)


@router.get("/transactions/export")
async def export_transactions(
    window: Tuple[date, date] = Depends(date_range),
    query: TransactionQuery = Depends(transaction_query),
    service: TransactionService = Depends(get_transaction_service),
) -> Response:
    """Download the filtered transactions as CSV."""
    start, end = window
    try:
        filename, content = await service.export(start, end, query)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DataStoreError as e:
        logger.error(f"Transaction export failed: {e.message}")
        raise _upstream_error(e)

    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/subscriptions", response_model=SubscriptionOverview)
async def subscriptions(
    window: Tuple[date, date] = Depends(date_range),
    currency: str = Depends(resolve_currency),
    status_filter: Optional[str] = Query(None, alias="status", description="Subscriber status or 'all'"),
    search: Optional[str] = Query(None, description="Substring of subscriber name or e-mail"),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionOverview:
    start, end = window
    try:
        return await service.overview(start, end, currency, status=status_filter, search=search)
    except DataStoreError as e:
        logger.error(f"Subscription overview failed: {e.message}")
        raise _upstream_error(e)


@router.post("/reports", response_model=TransactionReportResult)
async def send_transaction_report(
    request: TransactionReportRequest,
    service: ReportService = Depends(get_report_service),
) -> TransactionReportResult:
    """
    E-mail a transaction report to the given recipients.

    Raises:
        HTTPException 404: If no transactions match the filters
        HTTPException 502: If transactions cannot be loaded or the mailer fails
    """
    try:
        return await service.send(request)
    except ReportError as e:
        logger.info(f"Report not sent: {e}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DataStoreError as e:
        logger.error(f"Report query failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch transactions: {e.message}",
        )
    except EdgeFunctionError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to send report: {e.message}",
        )


@router.get("/exchange-rates", response_model=ExchangeRateTable)
async def exchange_rates(
    refresh: bool = Query(False, description="Reload the rates instead of using today's cached table"),
    service: ExchangeRateService = Depends(get_exchange_rate_service),
) -> ExchangeRateTable:
    if refresh:
        service.invalidate()
    return await service.current_table()


@router.get("/currency", response_model=CurrencyPreference)
async def get_display_currency(
    store: DisplayCurrencyStore = Depends(get_currency_store),
) -> CurrencyPreference:
    return CurrencyPreference(currency=store.get())


@router.put("/currency", response_model=CurrencyPreference)
async def set_display_currency(
    preference: CurrencyPreference,
    store: DisplayCurrencyStore = Depends(get_currency_store),
) -> CurrencyPreference:
    try:
        return CurrencyPreference(currency=store.set(preference.currency))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
