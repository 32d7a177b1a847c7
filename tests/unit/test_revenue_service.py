"""Unit tests for the revenue overview and analytics builders."""

from datetime import date

import pytest

from fixtures import FakeSupabaseClient, api_error, transaction_row
from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models.revenue import MonthlyRevenueRow
from lumist_analytics.models.transaction import Transaction
from lumist_analytics.services.aggregation import successful
from lumist_analytics.services.currency import ExchangeRateService
from lumist_analytics.services.revenue_service import (
    RevenueService,
    compute_kpis,
    daily_revenue_series,
    market_comparison,
    mrr_summary,
    mrr_trend,
    plan_performance,
    provider_stats,
    revenue_heatmap,
    share_items,
    status_funnel,
)


def _txn(**overrides) -> Transaction:
    return Transaction.model_validate(transaction_row(**overrides))


class TestKPIs:
    """Test KPI figures and previous-period deltas."""

    def test_current_period_figures(self, transactions, converter):
        kpis = compute_kpis(successful(transactions), [], converter, "USD")

        assert kpis.total_revenue == pytest.approx(40.0)
        assert kpis.transactions == 3
        assert kpis.customers == 3
        assert kpis.avg_transaction == pytest.approx(40.0 / 3)

    def test_deltas_against_previous_period(self, converter):
        current = [_txn(amount=30.0), _txn(amount=30.0, user_id="user_2")]
        previous = [_txn(amount=40.0)]

        kpis = compute_kpis(current, previous, converter, "USD")

        assert kpis.deltas.revenue == pytest.approx(50.0)
        assert kpis.deltas.transactions == pytest.approx(100.0)
        assert kpis.deltas.customers == pytest.approx(100.0)
        assert kpis.deltas.avg_transaction == pytest.approx(-25.0)

    def test_empty_period(self, converter):
        kpis = compute_kpis([], [], converter, "VND")
        assert kpis.total_revenue == 0.0
        assert kpis.avg_transaction == 0.0
        assert kpis.deltas.revenue == 0.0

    def test_revenue_displayed_in_vnd(self, transactions, converter):
        kpis = compute_kpis(successful(transactions), [], converter, "VND")
        assert kpis.total_revenue == pytest.approx(40.0 * 26100)


class TestSeries:
    """Test the daily series and share lists."""

    def test_daily_series_sorted_with_average(self, transactions, converter):
        series = daily_revenue_series(successful(transactions), converter, "USD")

        assert [p.transaction_date for p in series] == [date(2025, 1, 15), date(2025, 1, 16), date(2025, 1, 17)]
        assert [p.revenue for p in series] == pytest.approx([10.0, 10.0, 20.0])
        assert series[-1].ma7 == pytest.approx(40.0 / 3)

    def test_share_items_sorted_with_percentages(self):
        items = share_items({"stripe": 10.0, "vnpay": 30.0})

        assert [i.name for i in items] == ["vnpay", "stripe"]
        assert items[0].percentage == 75.0

    def test_share_items_without_percentages(self):
        items = share_items({"Monthly": 5.0}, with_percentage=False)
        assert items[0].percentage is None


class TestMRR:
    """Test MRR summary and trend."""

    def test_summary_with_delta(self, converter):
        rows = [
            MonthlyRevenueRow(month="2025-02", net_revenue=150.0),
            MonthlyRevenueRow(month="2025-01", net_revenue=100.0),
        ]
        summary = mrr_summary(rows, converter, "USD")

        assert summary.current_mrr == 150.0
        assert summary.delta == pytest.approx(50.0)
        assert summary.month_label == "Feb 2025"

    def test_summary_single_month_has_no_delta(self, converter):
        summary = mrr_summary([MonthlyRevenueRow(month="2025-02", net_revenue=10.0)], converter, "USD")
        assert summary.delta is None

    def test_summary_empty(self, converter):
        assert mrr_summary([], converter, "USD").current_mrr == 0.0

    def test_trend_growth(self, converter):
        rows = [
            MonthlyRevenueRow(month="2025-01", mrr=100.0),
            MonthlyRevenueRow(month="2025-02", net_revenue=2610000.0, currency="VND"),
        ]
        trend = mrr_trend(rows, converter, "USD")

        assert trend[0].growth == 0.0
        assert trend[1].mrr == pytest.approx(100.0)
        assert trend[1].growth == pytest.approx(0.0)
        assert trend[1].label == "Feb 2025"


class TestBreakdowns:
    """Test provider, plan, funnel, heatmap and market breakdowns."""

    def test_provider_stats(self, transactions, converter):
        stats = {s.name: s for s in provider_stats(successful(transactions), converter, "USD")}

        assert set(stats) == {"Stripe", "ZaloPay", "VNPay"}
        assert stats["VNPay"].revenue == pytest.approx(20.0)
        assert stats["VNPay"].avg_value == pytest.approx(20.0)

    def test_plan_performance_sorted(self, transactions, converter):
        plans = plan_performance(successful(transactions), converter, "USD")

        assert plans[0].name == "3 Months"
        assert plans[0].raw_name == "3months"
        assert plans[0].customers == 2
        assert plans[0].percentage == pytest.approx(75.0)
        assert sum(p.percentage for p in plans) == pytest.approx(100.0)

    def test_status_funnel(self, transactions):
        funnel = status_funnel(transactions)

        assert funnel.initiated == 5
        assert funnel.pending == 4
        assert funnel.success == 3
        assert funnel.drop_off_1 == pytest.approx(20.0)
        assert funnel.drop_off_2 == pytest.approx(25.0)

    def test_status_funnel_empty(self):
        assert status_funnel([]) is None

    def test_heatmap_spreads_over_business_hours(self, converter):
        heatmap = revenue_heatmap([_txn(transaction_date="2025-01-15", amount=100.0)], converter, "USD")

        assert set(heatmap.cells) == {"Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"}
        assert len(heatmap.cells["Wed"]) == 24
        assert heatmap.cells["Wed"][3] == 0.0
        assert heatmap.cells["Wed"][9] == pytest.approx(7.0)
        assert heatmap.cells["Wed"][15] == pytest.approx(15.0)
        assert heatmap.max_value == pytest.approx(15.0)

    def test_market_comparison(self, transactions, converter):
        markets = market_comparison(successful(transactions), converter, "USD")

        assert markets.vietnam.revenue == pytest.approx(30.0)
        assert markets.vietnam.transactions == 2
        assert markets.vietnam.top_plan == "3 Months"
        assert markets.international.revenue == pytest.approx(10.0)


class TestRevenueService:
    """Test the service against the fake data store."""

    @pytest.mark.asyncio
    async def test_overview(self, store, rates):
        service = RevenueService(store, rates)

        overview = await service.overview(date(2025, 1, 15), date(2025, 1, 18), "USD")

        assert overview.kpis.transactions == 3
        assert overview.kpis.total_revenue == pytest.approx(40.0)
        assert overview.providers[0].name == "vnpay"
        assert overview.mrr.current_mrr == 0.0
        assert overview.churn is None
        assert len(overview.recent_transactions) == 5
        assert overview.recent_transactions[0].transaction_id == "txn_005"

    @pytest.mark.asyncio
    async def test_overview_tolerates_missing_churn(self, fake_client, store, rates):
        """A failing churn view leaves churn empty instead of failing the page."""
        fake_client.errors["churn_summary"] = api_error()
        fake_client.tables["monthly_revenue_summary"] = [{"month": "2025-01", "net_revenue": 40.0}]

        overview = await RevenueService(store, rates).overview(date(2025, 1, 15), date(2025, 1, 18), "USD")

        assert overview.churn is None
        assert overview.mrr.current_mrr == 40.0

    @pytest.mark.asyncio
    async def test_overview_reads_churn(self, fake_client, store, rates):
        fake_client.tables["churn_summary"] = [{"total_subscribers": 10, "churn_rate_percent": 12.5}]

        overview = await RevenueService(store, rates).overview(date(2025, 1, 15), date(2025, 1, 18), "USD")

        assert overview.churn.total_subscribers == 10
        assert overview.churn.churn_rate_percent == 12.5

    @pytest.mark.asyncio
    async def test_overview_with_null_churn_rate(self, fake_client, store, rates):
        """An empty churn view reports a NULL rate; it reads as zero."""
        fake_client.tables["churn_summary"] = [
            {"total_subscribers": 0, "active_subscribers": None, "churn_rate_percent": None}
        ]

        overview = await RevenueService(store, rates).overview(date(2025, 1, 15), date(2025, 1, 18), "USD")

        assert overview.kpis.transactions == 3
        assert overview.churn.churn_rate_percent == 0.0
        assert overview.churn.active_subscribers == 0

    @pytest.mark.asyncio
    async def test_overview_skips_unreadable_monthly_rows(self, fake_client, store, rates):
        """Monthly rows that do not validate drop the MRR card, not the page."""
        fake_client.tables["monthly_revenue_summary"] = [{"month": None, "net_revenue": 40.0}]

        overview = await RevenueService(store, rates).overview(date(2025, 1, 15), date(2025, 1, 18), "USD")

        assert overview.kpis.total_revenue == pytest.approx(40.0)
        assert overview.mrr.current_mrr == 0.0
        assert overview.mrr.month_label is None

    @pytest.mark.asyncio
    async def test_analytics_null_monthly_currency_is_usd(self, fake_client, store, rates):
        fake_client.tables["monthly_revenue"] = [
            {"month": "2025-01", "mrr": 40.0, "currency": None},
            {"month": "2025-02", "mrr": 50.0, "currency": "USD"},
        ]

        analytics = await RevenueService(store, rates).analytics(date(2025, 1, 1), date(2025, 1, 31), "USD")

        assert [p.mrr for p in analytics.mrr_trend] == pytest.approx([40.0, 50.0])
        assert analytics.mrr_trend[1].growth == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_overview_fails_without_transactions(self):
        client = FakeSupabaseClient(errors={"unified_transactions": api_error()})
        store = DataStore(client, "public_analytics")

        with pytest.raises(DataStoreError):
            await RevenueService(store, ExchangeRateService(store)).overview(date(2025, 1, 1), date(2025, 1, 31), "USD")

    @pytest.mark.asyncio
    async def test_analytics(self, store, rates):
        analytics = await RevenueService(store, rates).analytics(date(2025, 1, 1), date(2025, 1, 31), "USD", "weekly")

        assert analytics.aggregation == "weekly"
        assert len(analytics.stacked_revenue) == 1
        assert analytics.stacked_revenue[0].total == pytest.approx(40.0)
        assert analytics.funnel.initiated == 5
        assert analytics.markets is not None

    @pytest.mark.asyncio
    async def test_analytics_empty_range(self, store, rates):
        analytics = await RevenueService(store, rates).analytics(date(2024, 1, 1), date(2024, 1, 31), "USD")

        assert analytics.stacked_revenue == []
        assert analytics.funnel is None
        assert analytics.markets is None
        assert analytics.heatmap.max_value == 0.0
