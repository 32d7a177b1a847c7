"""
Social media service.

Reads the social_analytics views of the proxy project. Facebook, Threads,
Instagram and TikTok share the account_metrics_daily / posts shape; Discord has
its own server views.
"""

import asyncio
from collections import Counter, defaultdict
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from lumist_analytics.core.exceptions import DataStoreError
from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.social import (
    AccountChartPoint,
    AccountMetricsDay,
    AccountOverview,
    Audience,
    BreakdownItem,
    DiscordActivityPoint,
    DiscordFunnel,
    DiscordGrowthPoint,
    DiscordOverview,
    FunnelStage,
    OverviewDeltas,
    Platform,
    Post,
    StepConversion,
)
from lumist_analytics.services.aggregation import percent_delta, previous_period
from lumist_analytics.services.sat_service import normalize_city

logger = get_logger(__name__)

ACCOUNT_METRICS_VIEW = "account_metrics_daily"
POSTS_VIEW = "posts"
POST_METRICS_VIEW = "post_metrics_daily"
DEMOGRAPHICS_VIEW = "demographic_metrics_daily"
DISCORD_LATEST_VIEW = "discord_latest_stats"
DISCORD_DAILY_VIEW = "discord_daily_summary"
DISCORD_GROWTH_VIEW = "discord_member_growth"
DISCORD_FUNNEL_VIEW = "discord_funnel_stats"

RECENT_POSTS = 5
TOP_BREAKDOWN = 5


def _total(rows: Sequence[AccountMetricsDay], field: str) -> int:
    return sum(getattr(row, field) or 0 for row in rows)


def _latest_followers(rows: Sequence[AccountMetricsDay]) -> int:
    return (rows[-1].followers_count or 0) if rows else 0


def posts_per_day(posts: Sequence[Mapping[str, Any]]) -> Dict[str, int]:
    """Count posts by the date part of published_at."""
    return dict(Counter(
        str(post["published_at"])[:10] for post in posts if post.get("published_at")
    ))


def merge_latest_metrics(
    posts: Sequence[Mapping[str, Any]],
    metrics: Sequence[Mapping[str, Any]],
) -> List[Post]:
    """Attach the most recent post_metrics_daily row to each post."""
    latest: Dict[Any, Mapping[str, Any]] = {}
    for row in metrics:
        post_id = row.get("post_id")
        if post_id not in latest or str(row.get("metric_date")) > str(latest[post_id].get("metric_date")):
            latest[post_id] = row

    merged = []
    for post in posts:
        extra = {k: v for k, v in latest.get(post.get("id"), {}).items() if k != "id"}
        merged.append(Post.model_validate({**post, **extra}))
    return merged


def build_account_overview(
    platform: Platform,
    account_id: str,
    start: date,
    end: date,
    current: Sequence[AccountMetricsDay],
    previous: Sequence[AccountMetricsDay],
    posts_in_range: Sequence[Mapping[str, Any]],
    recent_posts: Sequence[Post],
) -> AccountOverview:
    """KPIs, deltas and daily chart of one account; metric rows are oldest first."""
    followers = _latest_followers(current)
    new_followers = _total(current, "daily_follows")
    views = _total(current, "reach")
    engagements = _total(current, "engagements")
    visits = _total(current, "page_views")

    daily_posts = posts_per_day(posts_in_range)
    chart = [
        AccountChartPoint(
            date=row.metric_date.isoformat(),
            views=row.reach or 0,
            engagements=row.engagements or 0,
            visits=row.page_views or 0,
            new_followers=row.daily_follows or 0,
            posts=daily_posts.get(row.metric_date.isoformat(), 0),
        )
        for row in current
    ]

    return AccountOverview(
        platform=platform,
        account_id=account_id,
        start_date=start,
        end_date=end,
        current_followers=followers,
        total_new_followers=new_followers,
        total_views=views,
        total_engagements=engagements,
        total_visits=visits,
        engagement_rate=engagements / views * 100 if views > 0 else 0.0,
        total_posts=len(posts_in_range),
        deltas=OverviewDeltas(
            followers=percent_delta(followers, _latest_followers(previous)),
            new_followers=percent_delta(new_followers, _total(previous, "daily_follows")),
            views=percent_delta(views, _total(previous, "reach")),
            engagements=percent_delta(engagements, _total(previous, "engagements")),
            visits=percent_delta(visits, _total(previous, "page_views")),
        ),
        chart=chart,
        recent_posts=list(recent_posts),
    )


def growth_rate(rows: Sequence[AccountMetricsDay]) -> float:
    """Follower growth from the first to the last row, in percent."""
    if len(rows) < 2:
        return 0.0
    first = rows[0].followers_count or 0
    last = rows[-1].followers_count or 0
    if first == 0:
        return 0.0
    return (last - first) / first * 100


def breakdown(counts: Mapping[str, int], top: int = TOP_BREAKDOWN) -> List[BreakdownItem]:
    """Largest entries first with their share of the whole."""
    total = sum(counts.values())
    items = [
        BreakdownItem(name=key, key=key, count=count, percentage=count / total * 100 if total > 0 else 0.0)
        for key, count in counts.items()
    ]
    items.sort(key=lambda item: item.count, reverse=True)
    return items[:top]


def city_breakdown(raw: Mapping[str, int], top: int = TOP_BREAKDOWN) -> List[BreakdownItem]:
    """Merge raw city keys ("Ho Chi Minh City, Vietnam", ...) under their normalised name."""
    merged: Dict[str, int] = defaultdict(int)
    keys: Dict[str, str] = {}
    for raw_name, count in raw.items():
        name = normalize_city(raw_name.split(",")[0]) or raw_name
        merged[name] += count
        keys.setdefault(name, raw_name)

    items = breakdown(merged, top)
    return [item.model_copy(update={"key": keys[item.name]}) for item in items]


def _discord_int(row: Optional[Mapping[str, Any]], field: str) -> int:
    return int((row or {}).get(field) or 0)


def build_discord_overview(
    latest: Optional[Mapping[str, Any]],
    daily: Sequence[Mapping[str, Any]],
    growth: Sequence[Mapping[str, Any]],
) -> DiscordOverview:
    joins = sum(_discord_int(d, "joins") for d in daily)
    leaves = sum(_discord_int(d, "leaves") for d in daily)

    growth_delta = None
    if len(growth) >= 2:
        first = _discord_int(growth[0], "total_members")
        last = _discord_int(growth[-1], "total_members")
        if first > 0:
            growth_delta = (last - first) / first * 100

    return DiscordOverview(
        total_members=_discord_int(latest, "total_members"),
        onboarded_members=_discord_int(latest, "member_role_count"),
        verified_members=_discord_int(latest, "verified_count"),
        premium_members=_discord_int(latest, "premium_count"),
        total_joins=joins,
        total_leaves=leaves,
        net_growth=joins - leaves,
        growth_delta=growth_delta,
        growth_chart=[
            DiscordGrowthPoint(date=str(d.get("date")), members=_discord_int(d, "total_members"))
            for d in growth
        ],
        activity_chart=[
            DiscordActivityPoint(
                date=str(d.get("date")),
                joins=_discord_int(d, "joins"),
                leaves=_discord_int(d, "leaves"),
                net=_discord_int(d, "joins") - _discord_int(d, "leaves"),
            )
            for d in daily
        ],
    )


def build_discord_funnel(stats: Optional[Mapping[str, Any]]) -> DiscordFunnel:
    """Joined -> Onboarded -> Verified -> Premium, each stage relative to joined."""
    if not stats:
        return DiscordFunnel()

    joined = _discord_int(stats, "total_joined")
    onboarded = _discord_int(stats, "completed_onboarding")
    verified = _discord_int(stats, "verified")
    premium = _discord_int(stats, "premium")

    def share(part: int, whole: int) -> float:
        return part / whole * 100 if whole > 0 else 0.0

    return DiscordFunnel(
        stages=[
            FunnelStage(name="Joined", count=joined, percentage=100.0),
            FunnelStage(name="Onboarded", count=onboarded, percentage=share(onboarded, joined)),
            FunnelStage(name="Verified", count=verified, percentage=share(verified, joined)),
            FunnelStage(name="Premium", count=premium, percentage=share(premium, joined)),
        ],
        conversions={
            "joinedToOnboarded": StepConversion(rate=share(onboarded, joined), dropoff=joined - onboarded),
            "onboardedToVerified": StepConversion(rate=share(verified, onboarded), dropoff=onboarded - verified),
            "verifiedToPremium": StepConversion(rate=share(premium, verified), dropoff=verified - premium),
        },
        overall_conversion=share(premium, joined),
    )


class SocialService:
    """Account and Discord views of the social_analytics schema."""

    def __init__(self, store: DataStore):
        self.store = store

    async def _account_metrics(self, account_id: str, start: date, end: date) -> List[AccountMetricsDay]:
        rows = await self.store.select(
            ACCOUNT_METRICS_VIEW,
            eq={"account_id": account_id},
            gte={"metric_date": start.isoformat()},
            lte={"metric_date": end.isoformat()},
            order="metric_date",
        )
        return rows_to_models(rows, AccountMetricsDay)

    async def _recent_posts(self, account_id: str) -> List[Post]:
        posts = await self.store.select(
            POSTS_VIEW,
            eq={"account_id": account_id},
            order="published_at",
            desc=True,
            limit=RECENT_POSTS,
        )
        if not posts:
            return []
        try:
            metrics = await self.store.select(POST_METRICS_VIEW, in_={"post_id": [p["id"] for p in posts]})
        except DataStoreError as e:
            logger.warning(f"Could not fetch post metrics: {e.message}")
            metrics = []
        return merge_latest_metrics(posts, metrics)

    async def account_overview(
        self,
        platform: Platform,
        account_id: str,
        start: date,
        end: date,
    ) -> AccountOverview:
        """
        Overview of one account for [start, end].

        Raises:
            DataStoreError: If account metrics or posts cannot be fetched
        """
        prev_start, prev_end = previous_period(start, end)
        current, previous, recent, posts_in_range = await asyncio.gather(
            self._account_metrics(account_id, start, end),
            self._account_metrics(account_id, prev_start, prev_end),
            self._recent_posts(account_id),
            self.store.select(
                POSTS_VIEW,
                "id, published_at",
                eq={"account_id": account_id},
                gte={"published_at": start.isoformat()},
                lte={"published_at": f"{end.isoformat()}T23:59:59"},
            ),
        )
        logger.info(f"{platform} overview for {account_id}: {len(current)} metric days, {len(posts_in_range)} posts")
        return build_account_overview(platform, account_id, start, end, current, previous, posts_in_range, recent)

    async def _latest_breakdown(self, account_id: str, demographic_type: str) -> Dict[str, int]:
        rows = await self.store.select(
            DEMOGRAPHICS_VIEW,
            "breakdown_values, metric_date",
            eq={"account_id": account_id, "demographic_type": demographic_type},
            order="metric_date",
            desc=True,
            limit=1,
        )
        if not rows or not rows[0].get("breakdown_values"):
            return {}
        return {key: int(value or 0) for key, value in rows[0]["breakdown_values"].items()}

    async def audience(self, platform: Platform, account_id: str, start: date, end: date) -> Audience:
        metrics, countries, cities = await asyncio.gather(
            self._account_metrics(account_id, start, end),
            self._latest_breakdown(account_id, "country"),
            self._latest_breakdown(account_id, "city"),
        )
        return Audience(
            platform=platform,
            account_id=account_id,
            current_followers=_latest_followers(metrics),
            growth_rate=growth_rate(metrics),
            countries=breakdown(countries),
            cities=city_breakdown(cities),
        )

    async def discord_overview(self, start: date, end: date) -> DiscordOverview:
        window = {
            "gte": {"date": start.isoformat()},
            "lte": {"date": end.isoformat()},
            "order": "date",
        }
        latest, daily, growth = await asyncio.gather(
            self.store.single(DISCORD_LATEST_VIEW),
            self.store.select(DISCORD_DAILY_VIEW, **window),
            self.store.select(DISCORD_GROWTH_VIEW, **window),
        )
        return build_discord_overview(latest, daily, growth)

    async def discord_funnel(self) -> DiscordFunnel:
        return build_discord_funnel(await self.store.single(DISCORD_FUNNEL_VIEW))
