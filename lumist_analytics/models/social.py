"""
Social media models: daily account metrics, posts, demographics and the
Discord server views, plus the overview/audience/funnel view models.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Platform = Literal["facebook", "threads", "instagram", "tiktok"]


class AccountMetricsDay(BaseModel):
    """Row of social_analytics.account_metrics_daily."""

    model_config = ConfigDict(extra="ignore")

    metric_date: date
    account_id: str | None = None
    followers_count: int | None = None
    daily_follows: int | None = None
    reach: int | None = None
    engagements: int | None = None
    page_views: int | None = None


class Post(BaseModel):
    """Row of social_analytics.posts, optionally merged with its latest daily metrics."""

    model_config = ConfigDict(extra="allow")

    id: str
    account_id: str | None = None
    published_at: datetime | None = None
    content_text: str | None = None
    post_type: str | None = None


class OverviewDeltas(BaseModel):
    followers: float = 0.0
    new_followers: float = 0.0
    views: float = 0.0
    engagements: float = 0.0
    visits: float = 0.0


class AccountChartPoint(BaseModel):
    date: str
    views: int = 0
    engagements: int = 0
    visits: int = 0
    new_followers: int = 0
    posts: int = 0


class AccountOverview(BaseModel):
    platform: Platform
    account_id: str
    start_date: date
    end_date: date
    current_followers: int = 0
    total_new_followers: int = 0
    total_views: int = 0
    total_engagements: int = 0
    total_visits: int = 0
    engagement_rate: float = 0.0
    total_posts: int = 0
    deltas: OverviewDeltas = Field(default_factory=OverviewDeltas)
    chart: list[AccountChartPoint] = Field(default_factory=list)
    recent_posts: list[Post] = Field(default_factory=list)


class BreakdownItem(BaseModel):
    name: str
    key: str
    count: int
    percentage: float


class Audience(BaseModel):
    platform: Platform
    account_id: str
    current_followers: int = 0
    growth_rate: float = 0.0
    countries: list[BreakdownItem] = Field(default_factory=list)
    cities: list[BreakdownItem] = Field(default_factory=list)


class DiscordActivityPoint(BaseModel):
    date: str
    joins: int = 0
    leaves: int = 0
    net: int = 0


class DiscordGrowthPoint(BaseModel):
    date: str
    members: int = 0


class DiscordOverview(BaseModel):
    total_members: int = 0
    onboarded_members: int = 0
    verified_members: int = 0
    premium_members: int = 0
    total_joins: int = 0
    total_leaves: int = 0
    net_growth: int = 0
    growth_delta: float | None = None
    growth_chart: list[DiscordGrowthPoint] = Field(default_factory=list)
    activity_chart: list[DiscordActivityPoint] = Field(default_factory=list)


class FunnelStage(BaseModel):
    name: str
    count: int
    percentage: float


class StepConversion(BaseModel):
    rate: float
    dropoff: int


class DiscordFunnel(BaseModel):
    stages: list[FunnelStage] = Field(default_factory=list)
    conversions: dict[str, StepConversion] = Field(default_factory=dict)
    overall_conversion: float = 0.0
