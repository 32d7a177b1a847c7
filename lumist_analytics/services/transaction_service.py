"""
Transaction service for the transactions table of the revenue dashboard.

Fetches one date range of unified_transactions, then filters, sorts and
summarises it in memory and renders the filtered list as CSV.
"""

import asyncio
import csv
import io
from datetime import date, datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from lumist_analytics.core.config import settings
from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.transaction import (
    Transaction,
    TransactionList,
    TransactionQuery,
    TransactionSummary,
)
from lumist_analytics.services.currency import CurrencyConverter, ExchangeRateService

logger = get_logger(__name__)

TRANSACTIONS_VIEW = "unified_transactions"

CSV_HEADERS = [
    "Date",
    "Transaction ID",
    "Provider",
    "Customer",
    "Plan",
    "Amount",
    "Currency",
    "Status",
    "Processing Time (s)",
]

SEARCH_FIELDS = ("order_info", "transaction_id", "user_id")
SORTABLE_FIELDS = frozenset(Transaction.model_fields)


def _matches(value: Optional[str], wanted: str) -> bool:
    return wanted == "All" or (value or "").lower() == wanted.lower()


def filter_transactions(
    transactions: Sequence[Transaction],
    query: TransactionQuery,
) -> List[Transaction]:
    """Apply free-text search and provider/status/plan filters ("All" disables one)."""
    needle = (query.search or "").strip().lower()
    result = []
    for txn in transactions:
        if needle and not any(needle in (getattr(txn, field) or "").lower() for field in SEARCH_FIELDS):
            continue
        if not _matches(txn.payment_provider, query.provider):
            continue
        if not _matches(txn.status, query.status):
            continue
        if not _matches(txn.subscription_plan, query.plan):
            continue
        result.append(txn)
    return result


def sort_transactions(
    transactions: Sequence[Transaction],
    sort_key: str,
    direction: str,
    converter: CurrencyConverter,
) -> List[Transaction]:
    """
    Sort by a Transaction field.

    amount sorts by its USD value, strings compare case-insensitively and
    rows without a value come last in both directions.

    Raises:
        ValueError: If sort_key is not a Transaction field
    """
    if sort_key not in SORTABLE_FIELDS:
        raise ValueError(f"Cannot sort by {sort_key!r}")

    def value(txn: Transaction) -> Any:
        if sort_key == "amount":
            return converter.to_usd(txn.amount, txn.currency)
        raw = getattr(txn, sort_key)
        return raw.lower() if isinstance(raw, str) else raw

    present = [t for t in transactions if value(t) is not None]
    missing = [t for t in transactions if value(t) is None]
    present.sort(key=value, reverse=direction == "desc")
    return present + missing


def summarize(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> TransactionSummary:
    total = len(transactions)
    settled = sum(1 for t in transactions if t.is_successful)
    revenue_usd = sum(converter.to_usd(t.amount, t.currency) for t in transactions)
    processing = [t.processing_seconds for t in transactions if t.processing_seconds is not None]

    return TransactionSummary(
        total=total,
        success_rate=round(settled / total * 100, 1) if total else 0.0,
        total_revenue=converter.to_display(revenue_usd, currency),
        avg_processing_seconds=round(sum(processing) / len(processing)) if processing else 0,
    )


def _local_timestamp(value: Optional[datetime], tz: ZoneInfo) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def export_csv(transactions: Sequence[Transaction], tz_name: Optional[str] = None) -> str:
    """
    Render transactions as CSV with a fixed header row.

    Date is created_at in the display timezone; fields containing commas are quoted.
    """
    tz = ZoneInfo(tz_name or settings.display_timezone)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for txn in transactions:
        writer.writerow([
            _local_timestamp(txn.created_at, tz),
            txn.transaction_id or "",
            txn.payment_provider or "",
            txn.customer,
            txn.subscription_plan or "",
            _number(txn.amount),
            txn.currency,
            txn.status or "",
            _number(txn.processing_seconds) if txn.processing_seconds is not None else "",
        ])
    return buffer.getvalue()


def export_filename(start: date, end: date) -> str:
    return f"transactions_{start.isoformat()}_{end.isoformat()}.csv"


class TransactionService:
    """Transactions of a date range, filtered and sorted in memory."""

    def __init__(self, store: DataStore, rates: ExchangeRateService, limit: Optional[int] = None):
        self.store = store
        self.rates = rates
        self.limit = limit or settings.transactions_page_limit

    async def fetch(self, start: date, end: date) -> List[Transaction]:
        """
        Fetch the newest transactions dated within [start, end].

        Raises:
            DataStoreError: If the query fails
        """
        rows = await self.store.select(
            TRANSACTIONS_VIEW,
            gte={"transaction_date": start.isoformat()},
            lte={"transaction_date": end.isoformat()},
            order="created_at",
            desc=True,
            limit=self.limit,
        )
        return rows_to_models(rows, Transaction)

    async def _filtered(
        self,
        start: date,
        end: date,
        query: TransactionQuery,
    ) -> Tuple[List[Transaction], CurrencyConverter]:
        transactions, converter = await asyncio.gather(self.fetch(start, end), self.rates.converter())
        filtered = filter_transactions(transactions, query)
        ordered = sort_transactions(filtered, query.sort_key, query.sort_direction, converter)
        logger.info(f"Transactions {start}..{end}: {len(ordered)} of {len(transactions)} after filters")
        return ordered, converter

    async def list_transactions(
        self,
        start: date,
        end: date,
        currency: str,
        query: Optional[TransactionQuery] = None,
    ) -> TransactionList:
        transactions, converter = await self._filtered(start, end, query or TransactionQuery())
        return TransactionList(
            start_date=start,
            end_date=end,
            currency=currency,
            transactions=transactions,
            summary=summarize(transactions, converter, currency),
        )

    async def export(
        self,
        start: date,
        end: date,
        query: Optional[TransactionQuery] = None,
    ) -> Tuple[str, str]:
        """Return (filename, csv_text) for the filtered transactions."""
        transactions, _ = await self._filtered(start, end, query or TransactionQuery())
        return export_filename(start, end), export_csv(transactions)
