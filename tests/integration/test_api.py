"""Integration tests for the FastAPI endpoints.

Routes run against the real services over an in-memory Supabase client; the
report mailer is served by an httpx mock transport.
"""

from datetime import date

import httpx
import pytest
from fastapi.testclient import TestClient

from fixtures import FakeSupabaseClient, api_error
from lumist_analytics.core.config import Settings
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.main import create_app
from lumist_analytics.routers import dependencies, sat
from lumist_analytics.services.acquisition_service import AcquisitionService
from lumist_analytics.services.preferences import DisplayCurrencyStore
from lumist_analytics.services.report_service import ReportService
from lumist_analytics.services.revenue_service import RevenueService
from lumist_analytics.services.sat_service import SEATS_FUNCTION, SatService
from lumist_analytics.services.social_service import SocialService
from lumist_analytics.services.subscription_service import SubscriptionService
from lumist_analytics.services.transaction_service import TransactionService

JANUARY = {"start_date": "2025-01-01", "end_date": "2025-01-31"}


@pytest.fixture
def mailer():
    """Mock report function; set mailer["status"] to make it fail."""
    state = {"status": 200, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if state["status"] != 200:
            return httpx.Response(state["status"], json={"error": "Mailer down"})
        return httpx.Response(200, json={"success": True})

    state["transport"] = httpx.MockTransport(handler)
    return state


@pytest.fixture
def app(fake_client, store, rates, mailer, tmp_path):
    """Application with every service bound to the fake client."""
    application = create_app()
    social_client = FakeSupabaseClient(
        tables={"discord_funnel_stats": [{"total_joined": 10, "completed_onboarding": 5, "verified": 2, "premium": 1}]},
        functions={SEATS_FUNCTION: {"success": True, "data": [{"name": "UNIS Hanoi", "city": "Ha Noi", "lat": 21.07, "lng": 105.8}]}},
    )
    report_settings = Settings(
        _env_file=None,
        social_supabase_url="https://proxy.example.supabase.co",
        social_supabase_key="anon-key",
    )
    currency_store = DisplayCurrencyStore(str(tmp_path / "currency.json"))
    fake_client.tables.update({
        "monthly_conversion_stats": [
            {"signup_month": "2025-01", "total_signups": 200, "total_conversions": 10, "conversion_rate": 5.0},
        ],
        "geography_conversion_stats": [
            {"geography": "Vietnam", "total_users": 150, "converted_users": 9, "conversion_rate": 6.0},
            {"geography": "Not Converted", "total_users": 190},
        ],
        "retention_summary": [{"total_users": 120}],
        "signup_cohort_conversion": [
            {"cohort": "2024-12", "cohort_size": 90, "total_converted": 3},
            {"cohort": "2025-01", "cohort_size": 200, "total_converted": 10},
        ],
    })

    overrides = {
        dependencies.get_revenue_service: lambda: RevenueService(store, rates),
        dependencies.get_transaction_service: lambda: TransactionService(store, rates),
        dependencies.get_subscription_service: lambda: SubscriptionService(store, rates),
        dependencies.get_exchange_rate_service: lambda: rates,
        dependencies.get_report_service: lambda: ReportService(store, report_settings, mailer["transport"]),
        dependencies.get_sat_service: lambda: SatService(social_client),
        dependencies.get_social_service: lambda: SocialService(DataStore(social_client, "social_analytics")),
        dependencies.get_currency_store: lambda: currency_store,
        dependencies.get_acquisition_service: lambda: AcquisitionService(store),
    }
    application.dependency_overrides.update(overrides)
    return application


@pytest.fixture
def client(app):
    """Provide test client for API."""
    return TestClient(app)


class TestServiceEndpoints:
    """Test health, root and metrics."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["dependencies"]) == {"analytics_store", "social_store"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Lumist Analytics API"

    def test_metrics(self, client):
        client.get("/api/v1/revenue/overview", params=JANUARY)
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "analytics_store_queries_total" in response.text


class TestRevenueEndpoints:
    """Test the revenue routes."""

    def test_overview(self, client):
        response = client.get("/api/v1/revenue/overview", params={**JANUARY, "currency": "USD"})

        assert response.status_code == 200
        data = response.json()
        assert data["currency"] == "USD"
        assert data["kpis"]["transactions"] == 3
        assert data["kpis"]["total_revenue"] == pytest.approx(40.0)

    def test_overview_uses_saved_currency(self, client):
        assert client.put("/api/v1/revenue/currency", json={"currency": "VND"}).status_code == 200

        data = client.get("/api/v1/revenue/overview", params=JANUARY).json()

        assert data["currency"] == "VND"
        assert data["kpis"]["total_revenue"] == pytest.approx(40.0 * 26100)

    def test_invalid_range(self, client):
        response = client.get("/api/v1/revenue/overview", params={"start_date": "2025-02-01", "end_date": "2025-01-01"})
        assert response.status_code == 400

    def test_unsupported_currency(self, client):
        response = client.get("/api/v1/revenue/overview", params={**JANUARY, "currency": "EUR"})
        assert response.status_code == 422

    def test_data_store_failure(self, client, fake_client):
        fake_client.errors["unified_transactions"] = api_error("connection reset")

        response = client.get("/api/v1/revenue/overview", params=JANUARY)

        assert response.status_code == 502
        assert "connection reset" in response.json()["detail"]

    def test_analytics(self, client):
        response = client.get("/api/v1/revenue/analytics", params={**JANUARY, "aggregation": "monthly"})

        assert response.status_code == 200
        data = response.json()
        assert data["stacked_revenue"][0]["label"] == "Jan 2025"
        assert data["markets"]["vietnam"]["transactions"] == 2

    def test_subscriptions(self, client):
        response = client.get("/api/v1/revenue/subscriptions", params={**JANUARY, "status": "all"})

        assert response.status_code == 200
        assert response.json()["most_popular"] == "3months"

    def test_exchange_rates(self, client):
        response = client.get("/api/v1/revenue/exchange-rates", params={"refresh": True})

        assert response.status_code == 200
        assert response.json()["rates"]["VND"] == 26100.0

    def test_currency_preference(self, client):
        assert client.get("/api/v1/revenue/currency").json() == {"currency": "USD"}
        assert client.put("/api/v1/revenue/currency", json={"currency": "EUR"}).status_code == 422


class TestTransactionEndpoints:
    """Test the transaction list and CSV export."""

    def test_list(self, client):
        response = client.get(
            "/api/v1/revenue/transactions",
            params={**JANUARY, "status": "success", "sort_key": "amount", "sort_direction": "desc"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["total"] == 3
        assert data["summary"]["success_rate"] == 100.0
        assert data["transactions"][0]["transaction_id"] == "vn_003"

    def test_unknown_sort_key(self, client):
        response = client.get("/api/v1/revenue/transactions", params={**JANUARY, "sort_key": "nope"})
        assert response.status_code == 400

    def test_export(self, client):
        response = client.get("/api/v1/revenue/transactions/export", params={**JANUARY, "provider": "stripe"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "transactions_2025-01-01_2025-01-31.csv" in response.headers["content-disposition"]
        assert len(response.text.strip().split("\n")) == 4


class TestReportEndpoint:
    """Test sending the transaction report."""

    REQUEST = {
        "time_frame": "custom",
        "custom_start_date": "2025-01-01",
        "custom_end_date": "2025-01-31",
        "recipients": ["ops@example.com"],
    }

    def test_send(self, client, mailer):
        response = client.post("/api/v1/revenue/reports", json=self.REQUEST)

        assert response.status_code == 200
        assert response.json()["transactions"] == 3
        assert len(mailer["requests"]) == 1

    def test_no_matches(self, client, mailer):
        response = client.post("/api/v1/revenue/reports", json={**self.REQUEST, "statuses": ["refunded"]})

        assert response.status_code == 404
        assert response.json()["detail"] == "No transactions found matching your filters"
        assert mailer["requests"] == []

    def test_mailer_failure(self, client, mailer):
        mailer["status"] = 500

        response = client.post("/api/v1/revenue/reports", json=self.REQUEST)

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to send report: Mailer down"

    def test_invalid_recipient(self, client):
        response = client.post("/api/v1/revenue/reports", json={**self.REQUEST, "recipients": ["nobody"]})
        assert response.status_code == 422


class TestSatEndpoints:
    """Test the SAT tracker routes."""

    def test_dates(self, client):
        response = client.get("/api/v1/sat/dates")

        assert response.status_code == 200
        dates = response.json()
        assert all(d["value"] > date.today().isoformat() for d in dates)

    def test_seats(self, client):
        response = client.get("/api/v1/sat/seats", params={"date": "2025-11-01"})

        assert response.status_code == 200
        data = response.json()
        assert data["test_date"] == "2025-11-01"
        assert data["centers"][0]["city"] == "Hà Nội"
        assert data["open_count"] == 1

    def test_no_upcoming_date(self, client, monkeypatch):
        monkeypatch.setattr(sat, "future_sat_dates", lambda: [])

        response = client.get("/api/v1/sat/seats")

        assert response.status_code == 404
        assert response.json()["detail"] == "No upcoming SAT dates available"


class TestSocialEndpoints:
    """Test the social media routes."""

    def test_account_overview(self, client):
        response = client.get(
            "/api/v1/social/instagram/overview",
            params={**JANUARY, "account_id": "acc"},
        )

        assert response.status_code == 200
        assert response.json()["platform"] == "instagram"
        assert response.json()["total_posts"] == 0

    def test_unknown_platform(self, client):
        response = client.get("/api/v1/social/myspace/overview", params={"account_id": "acc"})
        assert response.status_code == 422

    def test_discord_funnel(self, client):
        response = client.get("/api/v1/social/discord/funnel")

        assert response.status_code == 200
        assert response.json()["overall_conversion"] == pytest.approx(10.0)


class TestAcquisitionEndpoints:
    """Test the acquisition routes."""

    def test_overview(self, client):
        response = client.get("/api/v1/acquisition/overview")

        assert response.status_code == 200
        data = response.json()
        assert data["kpis"]["conversion_rate"] == 5.0
        assert data["funnel"]["active_users"] == 120
        assert data["trend"][0]["label"] == "Jan 25"
        assert data["not_converted_users"] == 190
        assert [g["geography"] for g in data["geography"]] == ["Vietnam"]

    def test_weekly_overview_without_weekly_rows(self, client):
        response = client.get("/api/v1/acquisition/overview", params={"view": "weekly"})

        assert response.status_code == 200
        assert response.json()["trend"] == []

    def test_unknown_view(self, client):
        response = client.get("/api/v1/acquisition/overview", params={"view": "daily"})
        assert response.status_code == 422

    def test_overview_store_failure(self, client, fake_client):
        fake_client.errors["referral_source_performance"] = api_error("timeout")

        response = client.get("/api/v1/acquisition/overview")

        assert response.status_code == 502
        assert "referral_source_performance" in response.json()["detail"]

    def test_cohorts(self, client):
        response = client.get("/api/v1/acquisition/cohorts", params={"sort_key": "cohort_size", "sort_direction": "asc"})

        assert response.status_code == 200
        data = response.json()
        assert [c["cohort"] for c in data["cohorts"]] == ["2024-12", "2025-01"]
        assert data["cohorts"][1]["label"] == "Jan 2025"
        assert data["top_referrers"] == []

    def test_cohorts_unknown_sort_key(self, client):
        response = client.get("/api/v1/acquisition/cohorts", params={"sort_key": "nope"})
        assert response.status_code == 400
