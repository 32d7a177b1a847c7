"""Pytest configuration and shared fixtures for the analytics backend tests."""

from datetime import date

import pytest

from fixtures import EXCHANGE_RATES, SAMPLE_TRANSACTIONS, FakeSupabaseClient
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.transaction import Transaction
from lumist_analytics.services.currency import CurrencyConverter, ExchangeRateService


@pytest.fixture
def converter():
    """Converter with 1 USD = 26,100 VND."""
    return CurrencyConverter({"VND": 26100.0, "EUR": 0.9})


@pytest.fixture
def transactions():
    """Sample transactions across Stripe, ZaloPay and VNPay."""
    return rows_to_models(SAMPLE_TRANSACTIONS, Transaction)


@pytest.fixture
def fake_client():
    """Fake Supabase client holding the sample transactions and rates."""
    return FakeSupabaseClient(tables={
        "unified_transactions": list(SAMPLE_TRANSACTIONS),
        "daily_exchange_rates": list(EXCHANGE_RATES),
    })


@pytest.fixture
def store(fake_client):
    """DataStore over the fake client."""
    return DataStore(fake_client, "public_analytics")


@pytest.fixture
def rates(store):
    """Exchange rate service reading the fake rate table."""
    return ExchangeRateService(store)


@pytest.fixture
def rate_day():
    """Day for which the fake rate table has rows."""
    return date(2025, 1, 15)
