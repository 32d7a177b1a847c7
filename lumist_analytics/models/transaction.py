"""
Transaction models for the unified_transactions view.

Rows come from Stripe, VNPay and ZaloPay, normalised by the backend into one shape.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Transaction(BaseModel):
    """
    Payment transaction as returned by public_analytics.unified_transactions.
    Unknown columns are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    transaction_date: date = Field(..., description="Business date of the transaction (YYYY-MM-DD)")
    amount: float = Field(0.0, description="Amount in the transaction currency", ge=0)
    currency: str = Field("USD", description="ISO currency code of the amount")
    payment_provider: str | None = Field(None, description="stripe, vnpay, zalopay, ...")
    subscription_plan: str | None = Field(None, description="1month, 3months, 6months, lifetime, ...")
    status: str | None = Field(None, description="success, pending, failed or refunded")
    user_id: str | None = Field(None, description="Customer identifier")
    created_at: datetime | None = Field(None, description="Creation timestamp (UTC)")

    transaction_id: str | None = Field(None, description="Provider transaction identifier")
    email: str | None = Field(None, description="Customer e-mail")
    order_info: str | None = Field(None, description="Free-text order description")
    processing_seconds: float | None = Field(None, description="Provider processing time", ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def _null_amount_is_zero(cls, value):
        return 0.0 if value is None else value

    @field_validator("currency", mode="before")
    @classmethod
    def _null_currency_is_usd(cls, value):
        return value or "USD"

    @property
    def is_successful(self) -> bool:
        """Check if the transaction settled successfully."""
        return (self.status or "").lower() == "success"

    @property
    def customer(self) -> str:
        """Customer label used in exports."""
        return self.user_id or self.email or ""


class TransactionQuery(BaseModel):
    """
    In-memory filters applied to the transactions of a date range.
    "All" disables a filter.
    """

    search: str | None = Field(None, description="Substring of order_info, transaction_id or user_id")
    provider: str = Field("All", description="Payment provider (case-insensitive)")
    status: str = Field("All", description="Transaction status (case-insensitive)")
    plan: str = Field("All", description="Subscription plan (case-insensitive)")
    sort_key: str = Field("created_at", description="Column to sort by")
    sort_direction: Literal["asc", "desc"] = "desc"


class TransactionSummary(BaseModel):
    """Summary figures of a filtered transaction list."""

    total: int = Field(..., ge=0)
    success_rate: float = Field(..., description="Share of successful transactions in percent")
    total_revenue: float = Field(..., description="Sum of amounts in the display currency")
    avg_processing_seconds: int = Field(..., ge=0)


class TransactionList(BaseModel):
    """Filtered transactions of a date range with their summary."""

    start_date: date
    end_date: date
    currency: str
    transactions: list[Transaction]
    summary: TransactionSummary
