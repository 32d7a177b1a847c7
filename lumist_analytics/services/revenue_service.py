"""
Revenue service.

Builds the revenue overview (KPIs, daily series, provider and plan mix, MRR,
churn) and the revenue analytics page (stacked provider revenue, MRR trend,
provider and plan performance, status funnel, heatmap, market comparison).

Amounts are summed in USD and converted to the display currency at the edge.
"""

import asyncio
from collections import defaultdict
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.revenue import (
    Aggregation,
    ChurnSummary,
    DailyRevenuePoint,
    KPIDeltas,
    MarketComparison,
    MarketMetrics,
    MonthlyRevenueRow,
    MRRSummary,
    MRRTrendPoint,
    PlanPerformance,
    ProviderStats,
    RevenueAnalytics,
    RevenueHeatmap,
    RevenueKPIs,
    RevenueOverview,
    ShareItem,
    StatusFunnel,
)
from lumist_analytics.models.transaction import Transaction
from lumist_analytics.services.aggregation import (
    VIETNAM_PROVIDERS,
    bucket_by_provider,
    display_amount,
    filter_by_date_range,
    format_plan_name,
    format_provider_name,
    group_totals,
    month_label,
    moving_average,
    percent_delta,
    previous_period,
    successful,
)
from lumist_analytics.services.currency import CurrencyConverter, ExchangeRateService

logger = get_logger(__name__)

TRANSACTIONS_VIEW = "unified_transactions"
MONTHLY_SUMMARY_VIEW = "monthly_revenue_summary"
MONTHLY_REVENUE_VIEW = "monthly_revenue"
CHURN_VIEW = "churn_summary"

RECENT_TRANSACTIONS = 10

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
BUSINESS_HOURS = range(9, 19)
PEAK_HOURS = range(14, 17)
PEAK_WEIGHT = 0.15
OFF_PEAK_WEIGHT = 0.07


async def optional(awaitable: Awaitable[Any], dataset: str, default: Any = None) -> Any:
    """
    Await an optional dataset.

    A failed query or a row that does not validate is logged and yields the
    default, so the page still renders without it.
    """
    try:
        return await awaitable
    except DataStoreError as e:
        logger.warning(f"Could not fetch {dataset}: {e.message}")
    except ValidationError as e:
        logger.warning(f"Unexpected {dataset} rows: {e.error_count()} validation error(s)")
    return default


def _provider_key(txn: Transaction) -> str:
    return txn.payment_provider or "Other"


def _plan_key(txn: Transaction) -> str:
    return txn.subscription_plan or "One-time"


def compute_kpis(
    current: Sequence[Transaction],
    previous: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> RevenueKPIs:
    """
    KPIs of the successful transactions of the current period.

    Deltas are computed in USD against the previous period.
    """
    def totals(rows):
        revenue = sum(converter.to_usd(t.amount, t.currency) for t in rows)
        customers = {t.user_id for t in rows if t.user_id}
        return revenue, len(rows), len(customers)

    revenue, count, customers = totals(current)
    prev_revenue, prev_count, prev_customers = totals(previous)

    avg = revenue / count if count else 0.0
    prev_avg = prev_revenue / prev_count if prev_count else 0.0

    return RevenueKPIs(
        total_revenue=converter.to_display(revenue, currency),
        transactions=count,
        customers=customers,
        avg_transaction=converter.to_display(avg, currency) if count else 0.0,
        deltas=KPIDeltas(
            revenue=percent_delta(revenue, prev_revenue),
            transactions=percent_delta(count, prev_count),
            customers=percent_delta(customers, prev_customers),
            avg_transaction=percent_delta(avg, prev_avg),
        ),
    )


def daily_revenue_series(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> List[DailyRevenuePoint]:
    """Revenue per transaction_date, ascending, with a trailing 7-day average."""
    per_day: Dict[date, float] = defaultdict(float)
    for txn in transactions:
        per_day[txn.transaction_date] += display_amount(txn, converter, currency)

    days = sorted(per_day)
    values = [per_day[d] for d in days]
    return [
        DailyRevenuePoint(transaction_date=d, revenue=value, ma7=ma7)
        for d, value, ma7 in zip(days, values, moving_average(values, 7))
    ]


def share_items(totals: Dict[str, float], with_percentage: bool = True) -> List[ShareItem]:
    """Named totals sorted descending, each with its share of the sum."""
    whole = sum(totals.values())
    items = [
        ShareItem(
            name=name,
            value=value,
            percentage=(round(value / whole * 100, 1) if whole > 0 else 0.0) if with_percentage else None,
        )
        for name, value in totals.items()
    ]
    return sorted(items, key=lambda item: item.value, reverse=True)


def mrr_summary(
    rows: Sequence[MonthlyRevenueRow],
    converter: CurrencyConverter,
    currency: str,
) -> MRRSummary:
    """
    MRR of the most recent month with its change against the month before.

    Rows are newest first and net_revenue is already in USD.
    """
    if not rows:
        return MRRSummary()

    current = rows[0]
    current_mrr = converter.to_display(current.net_revenue or 0.0, currency)

    delta = None
    if len(rows) > 1:
        previous_mrr = converter.to_display(rows[1].net_revenue or 0.0, currency)
        if previous_mrr > 0:
            delta = (current_mrr - previous_mrr) / previous_mrr * 100
        elif current_mrr > 0:
            delta = 100.0

    return MRRSummary(current_mrr=current_mrr, delta=delta, month_label=month_label(current.month))


def mrr_trend(
    rows: Sequence[MonthlyRevenueRow],
    converter: CurrencyConverter,
    currency: str,
) -> List[MRRTrendPoint]:
    """Monthly MRR in display currency with month-over-month growth (rows oldest first)."""
    points = []
    previous_mrr = None
    for row in rows:
        amount = row.mrr or row.net_revenue or 0.0
        mrr = converter.convert(amount, row.currency or "USD", currency)
        growth = 0.0
        if previous_mrr is not None and previous_mrr > 0:
            growth = (mrr - previous_mrr) / previous_mrr * 100
        points.append(MRRTrendPoint(
            month=row.month,
            label=month_label(row.month) or row.month,
            mrr=mrr,
            growth=growth,
        ))
        previous_mrr = mrr
    return points


def provider_stats(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> List[ProviderStats]:
    revenue = group_totals(transactions, _provider_key, converter, currency)
    counts: Dict[str, int] = defaultdict(int)
    for txn in transactions:
        counts[_provider_key(txn)] += 1

    return [
        ProviderStats(
            name=format_provider_name(name),
            revenue=total,
            transactions=counts[name],
            avg_value=total / counts[name] if counts[name] else 0.0,
        )
        for name, total in revenue.items()
    ]


def plan_performance(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> List[PlanPerformance]:
    """Per-plan revenue, count, customers, average price and share, descending by revenue."""
    revenue = group_totals(transactions, _plan_key, converter, currency)
    counts: Dict[str, int] = defaultdict(int)
    customers: Dict[str, set] = defaultdict(set)
    for txn in transactions:
        counts[_plan_key(txn)] += 1
        if txn.user_id:
            customers[_plan_key(txn)].add(txn.user_id)

    whole = sum(revenue.values())
    plans = [
        PlanPerformance(
            name=format_plan_name(name),
            raw_name=name,
            revenue=total,
            transactions=counts[name],
            customers=len(customers[name]),
            avg_price=total / counts[name] if counts[name] else 0.0,
            percentage=total / whole * 100 if whole > 0 else 0.0,
        )
        for name, total in revenue.items()
    ]
    return sorted(plans, key=lambda plan: plan.revenue, reverse=True)


def status_funnel(transactions: Sequence[Transaction]) -> Optional[StatusFunnel]:
    """
    Initiated -> still processing -> success over all statuses.

    "Still processing" counts pending and successful transactions, i.e. those
    that did not fail straight away.
    """
    if not transactions:
        return None

    statuses = [(t.status or "").lower() for t in transactions]
    initiated = len(statuses)
    success = statuses.count("success")
    still_processing = statuses.count("pending") + success

    return StatusFunnel(
        initiated=initiated,
        pending=still_processing,
        success=success,
        pending_pct=still_processing / initiated * 100,
        success_pct=success / initiated * 100,
        drop_off_1=(initiated - still_processing) / initiated * 100,
        drop_off_2=(still_processing - success) / still_processing * 100 if still_processing else 0.0,
    )


def revenue_heatmap(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> RevenueHeatmap:
    """
    Weekday x hour revenue grid.

    Rows carry no time of day, so each day's revenue is spread over business
    hours with a heavier weight in the afternoon peak.
    """
    cells = {day: {hour: 0.0 for hour in range(24)} for day in WEEKDAYS}
    max_value = 0.0

    for txn in transactions:
        day = WEEKDAYS[txn.transaction_date.weekday()]
        amount = display_amount(txn, converter, currency)
        for hour in BUSINESS_HOURS:
            weight = PEAK_WEIGHT if hour in PEAK_HOURS else OFF_PEAK_WEIGHT
            cells[day][hour] += amount * weight
            max_value = max(max_value, cells[day][hour])

    return RevenueHeatmap(cells=cells, max_value=max_value)


def _market_metrics(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> MarketMetrics:
    revenue = sum(display_amount(t, converter, currency) for t in transactions)
    plans = group_totals(transactions, _plan_key, converter, currency)
    top_plan = max(plans, key=plans.get) if plans else None
    return MarketMetrics(
        revenue=revenue,
        transactions=len(transactions),
        avg_value=revenue / len(transactions) if transactions else 0.0,
        top_plan=format_plan_name(top_plan) if top_plan else None,
    )


def market_comparison(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> MarketComparison:
    """Vietnamese providers (ZaloPay, VNPay) against everything else."""
    vietnam, international = [], []
    for txn in transactions:
        target = vietnam if (txn.payment_provider or "").lower() in VIETNAM_PROVIDERS else international
        target.append(txn)
    return MarketComparison(
        vietnam=_market_metrics(vietnam, converter, currency),
        international=_market_metrics(international, converter, currency),
    )


class RevenueService:
    """Revenue overview and analytics built from the public_analytics views."""

    def __init__(self, store: DataStore, rates: ExchangeRateService):
        self.store = store
        self.rates = rates

    async def fetch_transactions(
        self,
        start: date,
        end: date,
        order: str = "transaction_date",
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Transaction]:
        rows = await self.store.select(
            TRANSACTIONS_VIEW,
            gte={"transaction_date": start.isoformat()},
            lte={"transaction_date": end.isoformat()},
            order=order,
            desc=desc,
            limit=limit,
        )
        return rows_to_models(rows, Transaction)

    async def fetch_churn(self) -> Optional[ChurnSummary]:
        row = await self.store.single(CHURN_VIEW)
        return ChurnSummary.model_validate(row) if row else None

    async def fetch_monthly(self, view: str, desc: bool = False, limit: Optional[int] = None) -> List[MonthlyRevenueRow]:
        rows = await self.store.select(view, order="month", desc=desc, limit=limit)
        return rows_to_models(rows, MonthlyRevenueRow)

    async def overview(self, start: date, end: date, currency: str) -> RevenueOverview:
        """
        Build the revenue overview for [start, end].

        Raises:
            DataStoreError: If the transactions cannot be fetched
        """
        prev_start, prev_end = previous_period(start, end)

        transactions, recent, monthly, churn, converter = await asyncio.gather(
            self.fetch_transactions(prev_start, end),
            self.store.select(TRANSACTIONS_VIEW, order="created_at", desc=True, limit=RECENT_TRANSACTIONS),
            optional(
                self.fetch_monthly(MONTHLY_SUMMARY_VIEW, desc=True, limit=2),
                "monthly revenue for MRR",
                default=[],
            ),
            optional(self.fetch_churn(), "churn summary"),
            self.rates.converter(),
        )

        current = successful(filter_by_date_range(transactions, start, end))
        previous = successful(filter_by_date_range(transactions, prev_start, prev_end))
        logger.info(
            f"Revenue overview {start}..{end}: {len(current)} successful transactions "
            f"({len(previous)} in previous period)"
        )

        return RevenueOverview(
            start_date=start,
            end_date=end,
            currency=currency,
            kpis=compute_kpis(current, previous, converter, currency),
            daily_revenue=daily_revenue_series(current, converter, currency),
            providers=share_items(group_totals(current, _provider_key, converter, currency)),
            plans=share_items(
                group_totals(current, lambda t: format_plan_name(t.subscription_plan), converter, currency),
                with_percentage=False,
            ),
            mrr=mrr_summary(monthly, converter, currency),
            churn=churn,
            recent_transactions=rows_to_models(recent, Transaction),
        )

    async def analytics(
        self,
        start: date,
        end: date,
        currency: str,
        aggregation: Aggregation = "daily",
    ) -> RevenueAnalytics:
        """
        Build the revenue analytics page for [start, end].

        Raises:
            DataStoreError: If the transactions or monthly revenue cannot be fetched
        """
        transactions, monthly, converter = await asyncio.gather(
            self.fetch_transactions(start, end),
            self.fetch_monthly(MONTHLY_REVENUE_VIEW),
            self.rates.converter(),
        )

        in_range = filter_by_date_range(transactions, start, end)
        settled = successful(in_range)

        return RevenueAnalytics(
            start_date=start,
            end_date=end,
            currency=currency,
            aggregation=aggregation,
            stacked_revenue=bucket_by_provider(settled, converter, currency, aggregation),
            mrr_trend=mrr_trend(monthly, converter, currency),
            providers=provider_stats(settled, converter, currency),
            plans=plan_performance(settled, converter, currency),
            funnel=status_funnel(in_range),
            heatmap=revenue_heatmap(settled, converter, currency),
            markets=market_comparison(settled, converter, currency) if in_range else None,
        )
