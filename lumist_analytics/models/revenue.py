"""
Revenue models: backend aggregates (monthly revenue, churn) and the view
models returned by the overview and analytics endpoints.
"""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lumist_analytics.models.transaction import Transaction

Aggregation = Literal["daily", "weekly", "monthly"]


class ExchangeRateTable(BaseModel):
    """Rates to USD currently used for conversion (1 USD = rate units)."""

    rates: dict[str, float]
    source: Literal["today", "recent", "fallback"]
    loaded_for: date


class MonthlyRevenueRow(BaseModel):
    """Row of monthly_revenue / monthly_revenue_summary."""

    model_config = ConfigDict(extra="ignore")

    month: str = Field(..., description="Month key (YYYY-MM)")
    net_revenue: float | None = None
    mrr: float | None = None
    currency: str = "USD"
    transaction_count: int | None = None
    unique_customers: int | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def _null_currency_is_usd(cls, value):
        return value or "USD"


class ChurnSummary(BaseModel):
    """Single row of the churn_summary view."""

    model_config = ConfigDict(extra="ignore")

    total_subscribers: int = 0
    active_subscribers: int = 0
    churned_subscribers: int = 0
    churn_rate_percent: float = 0.0
    expiring_7_days: int = 0
    expiring_30_days: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _null_count_is_zero(cls, value):
        # churn_rate_percent is NULL while the view has no subscribers
        return 0 if value is None else value


class KPIDeltas(BaseModel):
    """Percentage change versus the previous period of the same length."""

    revenue: float = 0.0
    transactions: float = 0.0
    customers: float = 0.0
    avg_transaction: float = 0.0


class RevenueKPIs(BaseModel):
    total_revenue: float = 0.0
    transactions: int = 0
    customers: int = 0
    avg_transaction: float = 0.0
    deltas: KPIDeltas = Field(default_factory=KPIDeltas)


class DailyRevenuePoint(BaseModel):
    transaction_date: date
    revenue: float
    ma7: float = Field(..., description="Trailing 7-day moving average of revenue")


class ShareItem(BaseModel):
    """Named total with its share of the whole, in percent."""

    name: str
    value: float
    percentage: float | None = None


class MRRSummary(BaseModel):
    current_mrr: float = 0.0
    delta: float | None = None
    month_label: str | None = None


class RevenueOverview(BaseModel):
    """Revenue overview page: KPIs, daily series, provider/plan mix, MRR, churn."""

    start_date: date
    end_date: date
    currency: str
    kpis: RevenueKPIs
    daily_revenue: list[DailyRevenuePoint]
    providers: list[ShareItem]
    plans: list[ShareItem]
    mrr: MRRSummary
    churn: ChurnSummary | None = None
    recent_transactions: list[Transaction] = Field(default_factory=list)


class StackedRevenuePoint(BaseModel):
    """Revenue of one time bucket split by payment provider."""

    period: date = Field(..., description="First day of the bucket")
    label: str
    stripe: float = 0.0
    zalopay: float = 0.0
    vnpay: float = 0.0
    other: float = 0.0

    @property
    def total(self) -> float:
        return self.stripe + self.zalopay + self.vnpay + self.other


class MRRTrendPoint(BaseModel):
    month: str
    label: str
    mrr: float
    growth: float


class ProviderStats(BaseModel):
    name: str
    revenue: float
    transactions: int
    avg_value: float


class PlanPerformance(BaseModel):
    name: str
    raw_name: str
    revenue: float
    transactions: int
    customers: int
    avg_price: float
    percentage: float


class StatusFunnel(BaseModel):
    """Initiated -> still processing (pending + success) -> success."""

    initiated: int
    pending: int
    success: int
    initiated_pct: float = 100.0
    pending_pct: float
    success_pct: float
    drop_off_1: float
    drop_off_2: float


class RevenueHeatmap(BaseModel):
    cells: dict[str, dict[int, float]] = Field(..., description="Weekday -> hour -> revenue")
    max_value: float


class MarketMetrics(BaseModel):
    revenue: float = 0.0
    transactions: int = 0
    avg_value: float = 0.0
    top_plan: str | None = None


class MarketComparison(BaseModel):
    vietnam: MarketMetrics
    international: MarketMetrics


class RevenueAnalytics(BaseModel):
    """Revenue analytics page."""

    start_date: date
    end_date: date
    currency: str
    aggregation: Aggregation
    stacked_revenue: list[StackedRevenuePoint]
    mrr_trend: list[MRRTrendPoint]
    providers: list[ProviderStats]
    plans: list[PlanPerformance]
    funnel: StatusFunnel | None = None
    heatmap: RevenueHeatmap
    markets: MarketComparison | None = None
