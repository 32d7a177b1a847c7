"""
Aggregation helpers shared by the revenue, transaction and subscription services.

All helpers are pure and make a single pass over their input.
"""

import re
from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from lumist_analytics.models.revenue import Aggregation, StackedRevenuePoint
from lumist_analytics.models.transaction import Transaction
from lumist_analytics.services.currency import CurrencyConverter

STACKED_PROVIDERS = ("stripe", "zalopay", "vnpay", "other")
VIETNAM_PROVIDERS = ("zalopay", "vnpay")

PROVIDER_NAMES = {
    "vnpay": "VNPay",
    "zalopay": "ZaloPay",
    "stripe": "Stripe",
}

PLAN_NAMES = {
    "monthly": "Monthly",
    "1month": "1 Month",
    "3months": "3 Months",
    "3month": "3 Months",
    "three_months": "3 Months",
    "6months": "6 Months",
    "6month": "6 Months",
    "six_months": "6 Months",
    "yearly": "Yearly",
    "1year": "1 Year",
    "annual": "Annual",
    "lifetime": "Lifetime",
    "one-time": "One-time",
}

# "12months" -> "12 Months", "2 year" -> "2 Years"
PLAN_PATTERN = re.compile(r"^(\d+)\s*(months?|years?)$", re.IGNORECASE)


def format_provider_name(provider: Optional[str]) -> str:
    if not provider:
        return "Unknown"
    return PROVIDER_NAMES.get(provider.lower(), provider)


def format_plan_name(plan: Optional[str]) -> str:
    if not plan:
        return "One-time"
    name = PLAN_NAMES.get(plan.lower())
    if name:
        return name

    match = PLAN_PATTERN.match(plan)
    if match:
        number, unit = match.group(1), match.group(2).lower().rstrip("s")
        return f"{number} {unit.capitalize()}" + ("" if number == "1" else "s")

    return plan[0].upper() + plan[1:]


def month_label(month: str) -> Optional[str]:
    """'2025-06' -> 'Jun 2025'; None when the key is not YYYY-MM."""
    try:
        year, month_number = (int(part) for part in month.split("-")[:2])
        return date(year, month_number, 1).strftime("%b %Y")
    except (ValueError, TypeError, AttributeError):
        return None


def filter_by_date_range(
    transactions: Iterable[Transaction],
    start: date,
    end: date,
) -> List[Transaction]:
    """Transactions whose transaction_date lies in [start, end], both ends included."""
    return [t for t in transactions if start <= t.transaction_date <= end]


def successful(transactions: Iterable[Transaction]) -> List[Transaction]:
    return [t for t in transactions if t.is_successful]


def display_amount(txn: Transaction, converter: CurrencyConverter, currency: str) -> float:
    """Transaction amount converted to the display currency through USD."""
    return converter.to_display(converter.to_usd(txn.amount, txn.currency), currency)


def group_totals(
    transactions: Iterable[Transaction],
    key: Callable[[Transaction], str],
    converter: CurrencyConverter,
    currency: str,
) -> Dict[str, float]:
    """
    Sum converted amounts per group key.

    Every transaction lands in exactly one group, so the group totals add up
    to the total of all amounts.
    """
    totals: Dict[str, float] = defaultdict(float)
    for txn in transactions:
        totals[key(txn)] += display_amount(txn, converter, currency)
    return dict(totals)


def percent_delta(current: float, previous: float) -> float:
    """Percentage change; a zero baseline reads as +100% when anything happened."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def previous_period(start: date, end: date) -> Tuple[date, date]:
    """The window of the same length ending the day before start."""
    duration = (end - start).days + 1
    return start - timedelta(days=duration), start - timedelta(days=1)


def moving_average(values: Sequence[float], window: int = 7) -> List[float]:
    """Trailing mean over up to `window` points, shorter at the start of the series."""
    averages = []
    for index in range(len(values)):
        span = values[max(0, index - window + 1):index + 1]
        averages.append(sum(span) / len(span))
    return averages


def _stacked_column(provider: Optional[str]) -> str:
    key = (provider or "").lower()
    return key if key in STACKED_PROVIDERS[:-1] else "other"


def _bucket_label(period: date, aggregation: Aggregation) -> str:
    if aggregation == "weekly":
        return f"Week of {period:%b} {period.day}"
    if aggregation == "monthly":
        return f"{period:%b %Y}"
    return f"{period:%b} {period.day}"


def bucket_by_provider(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
    aggregation: Aggregation = "daily",
) -> List[StackedRevenuePoint]:
    """
    Revenue per time bucket and payment provider, oldest bucket first.

    Weekly buckets start on Monday; monthly buckets on the first of the month.
    """
    if not transactions:
        return []

    frame = pd.DataFrame({
        "day": pd.to_datetime([t.transaction_date for t in transactions]),
        "provider": [_stacked_column(t.payment_provider) for t in transactions],
        "amount": [display_amount(t, converter, currency) for t in transactions],
    })

    if aggregation == "weekly":
        frame["period"] = frame["day"] - pd.to_timedelta(frame["day"].dt.weekday, unit="D")
    elif aggregation == "monthly":
        frame["period"] = frame["day"].dt.to_period("M").dt.to_timestamp()
    else:
        frame["period"] = frame["day"]

    table = (
        frame.pivot_table(index="period", columns="provider", values="amount", aggfunc="sum", fill_value=0.0)
        .reindex(columns=list(STACKED_PROVIDERS), fill_value=0.0)
        .sort_index()
    )

    points = []
    for period, row in table.iterrows():
        day = period.date()
        points.append(StackedRevenuePoint(
            period=day,
            label=_bucket_label(day, aggregation),
            **{provider: float(row[provider]) for provider in STACKED_PROVIDERS},
        ))
    return points
