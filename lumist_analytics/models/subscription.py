"""
Subscription models for the user_subscriptions view and plan breakdowns.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lumist_analytics.models.revenue import ChurnSummary


class Subscriber(BaseModel):
    """Row of public_analytics.user_subscriptions."""

    model_config = ConfigDict(extra="ignore")

    user_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    user_name: str | None = None
    email: str | None = None
    plan_name: str | None = None
    plan_price: float | None = None
    status: str | None = Field(None, description="active, expiring_soon, at_risk, expired, ...")
    payment_provider: str | None = None
    subscription_start: date | None = None
    subscription_end: date | None = None
    days_left: int | None = Field(None, description="Days until subscription_end, computed on read")

    @field_validator("subscription_start", "subscription_end", mode="before")
    @classmethod
    def _date_part(cls, value):
        # Views return timestamps for these columns
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value

    @property
    def full_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or (self.user_name or "")


class PlanBreakdown(BaseModel):
    plan: str
    revenue: float
    transactions: int
    customers: int
    providers: list[str]
    percentage: float


class SubscriptionOverview(BaseModel):
    start_date: date
    end_date: date
    currency: str
    plans: list[PlanBreakdown]
    total_revenue: float
    total_subscribers: int
    most_popular: str | None = None
    churn: ChurnSummary | None = None
    subscribers: list[Subscriber] = Field(default_factory=list)
