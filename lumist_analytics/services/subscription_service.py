"""
Subscription service: plan breakdown of successful transactions, the
subscriber list with days left, and the churn summary.
"""

import asyncio
from collections import defaultdict
from datetime import date
from typing import List, Optional, Sequence

from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.revenue import ChurnSummary
from lumist_analytics.models.subscription import PlanBreakdown, Subscriber, SubscriptionOverview
from lumist_analytics.models.transaction import Transaction
from lumist_analytics.services.aggregation import display_amount
from lumist_analytics.services.currency import CurrencyConverter, ExchangeRateService
from lumist_analytics.services.revenue_service import CHURN_VIEW, TRANSACTIONS_VIEW, optional

logger = get_logger(__name__)

SUBSCRIPTIONS_VIEW = "user_subscriptions"


def plan_breakdown(
    transactions: Sequence[Transaction],
    converter: CurrencyConverter,
    currency: str,
) -> List[PlanBreakdown]:
    """Revenue, count, customers and providers per raw plan, descending by revenue."""
    revenue = defaultdict(float)
    counts = defaultdict(int)
    customers = defaultdict(set)
    providers = defaultdict(list)

    for txn in transactions:
        plan = txn.subscription_plan or "one-time"
        revenue[plan] += display_amount(txn, converter, currency)
        counts[plan] += 1
        if txn.user_id:
            customers[plan].add(txn.user_id)
        if txn.payment_provider and txn.payment_provider not in providers[plan]:
            providers[plan].append(txn.payment_provider)

    whole = sum(revenue.values())
    plans = [
        PlanBreakdown(
            plan=plan,
            revenue=total,
            transactions=counts[plan],
            customers=len(customers[plan]),
            providers=providers[plan],
            percentage=total / whole * 100 if whole > 0 else 0.0,
        )
        for plan, total in revenue.items()
    ]
    return sorted(plans, key=lambda p: p.revenue, reverse=True)


def with_days_left(subscribers: Sequence[Subscriber], today: date) -> List[Subscriber]:
    return [
        sub.model_copy(update={
            "days_left": (sub.subscription_end - today).days if sub.subscription_end else None,
        })
        for sub in subscribers
    ]


def filter_subscribers(
    subscribers: Sequence[Subscriber],
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Subscriber]:
    """Keep subscribers with the given status whose name or e-mail contains search."""
    needle = (search or "").strip().lower()
    result = []
    for sub in subscribers:
        if status and status.lower() != "all" and sub.status != status:
            continue
        if needle:
            full_name = f"{sub.first_name or ''} {sub.last_name or ''}".lower()
            if needle not in full_name and needle not in (sub.email or "").lower():
                continue
        result.append(sub)
    return result


class SubscriptionService:
    """Subscription overview for a date range."""

    def __init__(self, store: DataStore, rates: ExchangeRateService):
        self.store = store
        self.rates = rates

    async def _churn(self) -> Optional[ChurnSummary]:
        row = await self.store.single(CHURN_VIEW)
        return ChurnSummary.model_validate(row) if row else None

    async def _subscribers(self) -> List[Subscriber]:
        rows = await self.store.select(SUBSCRIPTIONS_VIEW, order="subscription_end")
        return rows_to_models(rows, Subscriber)

    async def overview(
        self,
        start: date,
        end: date,
        currency: str,
        status: Optional[str] = None,
        search: Optional[str] = None,
        today: Optional[date] = None,
    ) -> SubscriptionOverview:
        """
        Build the subscriptions page.

        Raises:
            DataStoreError: If the transactions cannot be fetched
        """
        rows, all_subscribers, churn, converter = await asyncio.gather(
            self.store.select(
                TRANSACTIONS_VIEW,
                gte={"transaction_date": start.isoformat()},
                lte={"transaction_date": end.isoformat()},
                eq={"status": "success"},
                order="transaction_date",
                desc=True,
            ),
            optional(self._subscribers(), "subscribers", default=[]),
            optional(self._churn(), "churn summary"),
            self.rates.converter(),
        )

        transactions = rows_to_models(rows, Transaction)
        plans = plan_breakdown(transactions, converter, currency)
        subscribers = with_days_left(all_subscribers, today or date.today())

        logger.info(
            f"Subscriptions {start}..{end}: {len(transactions)} transactions, "
            f"{len(subscribers)} subscribers"
        )

        return SubscriptionOverview(
            start_date=start,
            end_date=end,
            currency=currency,
            plans=plans,
            total_revenue=sum(p.revenue for p in plans),
            total_subscribers=len({t.user_id for t in transactions}),
            most_popular=plans[0].plan if plans else None,
            churn=churn,
            subscribers=filter_subscribers(subscribers, status, search),
        )
