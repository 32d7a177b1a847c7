"""
Currency conversion against a flat table of rates to USD.

A rate is the number of currency units per 1 USD (VND: 26100 means
1 USD = 26,100 VND). Conversion is best-effort: a missing rate logs a warning
and leaves the amount unconverted instead of failing.
"""

import asyncio
from datetime import date
from typing import Dict, Iterable, Mapping, Optional

from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.core.observability import (
    exchange_rate_loads_total,
    get_logger,
    missing_exchange_rate_total,
)
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models.revenue import ExchangeRateTable

logger = get_logger(__name__)

BASE_CURRENCY = "USD"
DISPLAY_CURRENCIES = ("USD", "VND")

# 1 USD = 26,100 VND
FALLBACK_RATES: Dict[str, float] = {"VND": 26100.0, "EUR": 0.92, "GBP": 0.79}

RATES_TABLE = "daily_exchange_rates"
RECENT_RATES_LIMIT = 10


class CurrencyConverter:
    """Converts amounts between a source currency, USD and a display currency."""

    def __init__(self, rates: Optional[Mapping[str, float]] = None):
        self._rates: Dict[str, float] = dict(rates or {})

    @property
    def rates(self) -> Dict[str, float]:
        return dict(self._rates)

    def _rate(self, currency: str) -> Optional[float]:
        rate = self._rates.get(currency)
        if not rate:
            logger.warning(f"Exchange rate not found for {currency}")
            missing_exchange_rate_total.labels(currency=currency).inc()
            return None
        return rate

    def to_usd(self, amount: float, from_currency: str) -> float:
        """Convert an amount in from_currency to USD."""
        if from_currency == BASE_CURRENCY:
            return amount
        rate = self._rate(from_currency)
        if rate is None:
            return amount
        return amount / rate

    def to_display(self, amount_usd: float, to_currency: str) -> float:
        """Convert a USD amount to to_currency."""
        if to_currency == BASE_CURRENCY:
            return amount_usd
        rate = self._rate(to_currency)
        if rate is None:
            return amount_usd
        return amount_usd * rate

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert through USD from one currency to another."""
        return self.to_display(self.to_usd(amount, from_currency), to_currency)


def first_rate_per_currency(rows: Iterable[Mapping]) -> Dict[str, float]:
    """Keep the first rate seen for each currency (rows are newest first)."""
    rates: Dict[str, float] = {}
    for row in rows:
        code = row.get("currency_code")
        rate = row.get("rate_to_usd")
        if code and rate is not None and code not in rates:
            rates[code] = float(rate)
    return rates


class ExchangeRateService:
    """
    Loads the rate table once per calendar day and hands out converters.

    Source order: today's rows, else the most recent rows, else FALLBACK_RATES.
    """

    def __init__(self, store: DataStore):
        self.store = store
        self._table: Optional[ExchangeRateTable] = None
        self._lock = asyncio.Lock()

    async def load(self, today: Optional[date] = None) -> ExchangeRateTable:
        """
        Fetch the current rate table from the data store.

        Args:
            today: Date whose rates are requested (defaults to date.today())

        Returns:
            ExchangeRateTable with the rates and where they came from
        """
        today = today or date.today()

        try:
            rows = await self.store.select(
                RATES_TABLE,
                "currency_code, rate_to_usd",
                eq={"rate_date": today.isoformat()},
            )
        except DataStoreError as e:
            logger.warning(f"Could not fetch today's exchange rates: {e.message}")
            rows = []

        if rows:
            return self._loaded(first_rate_per_currency(rows), "today", today)

        try:
            rows = await self.store.select(
                RATES_TABLE,
                "currency_code, rate_to_usd",
                order="rate_date",
                desc=True,
                limit=RECENT_RATES_LIMIT,
            )
        except DataStoreError as e:
            logger.error(f"Error fetching exchange rates: {e.message}")
            rows = []

        rates = first_rate_per_currency(rows)
        if rates:
            return self._loaded(rates, "recent", today)

        logger.error("No exchange rates available, using fallback rates")
        return self._loaded(dict(FALLBACK_RATES), "fallback", today)

    def _loaded(self, rates: Dict[str, float], source: str, today: date) -> ExchangeRateTable:
        exchange_rate_loads_total.labels(source=source).inc()
        logger.info(f"Loaded {len(rates)} exchange rates (source={source})")
        return ExchangeRateTable(rates=rates, source=source, loaded_for=today)

    async def current_table(self, today: Optional[date] = None) -> ExchangeRateTable:
        """Return the cached table, reloading when the day has changed."""
        today = today or date.today()
        async with self._lock:
            if self._table is None or self._table.loaded_for != today:
                self._table = await self.load(today)
            return self._table

    async def converter(self, today: Optional[date] = None) -> CurrencyConverter:
        table = await self.current_table(today)
        return CurrencyConverter(table.rates)

    def invalidate(self) -> None:
        """Drop the cached table so the next call reloads it."""
        self._table = None
