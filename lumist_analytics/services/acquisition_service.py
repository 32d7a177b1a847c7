"""
Acquisition service.

Signup-to-paid conversion read from the backend's acquisition views: monthly
and weekly conversion stats, referral sources, geography, the active-user
count of retention_summary, signup cohorts and referral-code performance.
The views are already aggregated; this module only totals, labels and sorts.
"""

import asyncio
from datetime import date
from typing import Any, List, Optional, Sequence, Tuple

from lumist_analytics.core.observability import get_logger
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models import rows_to_models
from lumist_analytics.models.acquisition import (
    AcquisitionKPIs,
    AcquisitionOverview,
    Cohort,
    CohortReport,
    ConversionFunnel,
    ConversionStatsRow,
    ConversionTrendPoint,
    ConversionView,
    GeographyRow,
    Referrer,
    ReferralSourceRow,
    SourceShare,
)
from lumist_analytics.services.aggregation import month_label
from lumist_analytics.services.revenue_service import optional

logger = get_logger(__name__)

MONTHLY_CONVERSION_VIEW = "monthly_conversion_stats"
WEEKLY_CONVERSION_VIEW = "weekly_conversion_stats"
REFERRAL_SOURCE_VIEW = "referral_source_performance"
GEOGRAPHY_VIEW = "geography_conversion_stats"
RETENTION_VIEW = "retention_summary"
COHORT_VIEW = "signup_cohort_conversion"
REFERRAL_CODE_VIEW = "referral_code_performance"

NOT_CONVERTED = "Not Converted"
TOP_SOURCES = 10
TOP_REFERRERS = 20
COHORT_SORT_KEYS = ("cohort", "cohort_size", "total_converted", "conversion_rate", "avg_days_to_convert")


def _rate(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole > 0 else 0.0


def short_month_label(month: Optional[str]) -> str:
    """'2025-01' -> 'Jan 25'."""
    try:
        year, month_number = (int(part) for part in month.split("-")[:2])
        return date(year, month_number, 1).strftime("%b %y")
    except (ValueError, TypeError, AttributeError):
        return month or ""


def week_label(week: Optional[str]) -> str:
    """'2025-W05' -> "W05 '25"."""
    if not week or "-W" not in week:
        return week or ""
    year, number = week.split("-W", 1)
    return f"W{number} '{year[2:]}"


def acquisition_kpis(monthly: Sequence[ConversionStatsRow]) -> AcquisitionKPIs:
    """Signup and conversion totals over every month, with the mean days to convert."""
    signups = sum(row.total_signups for row in monthly)
    conversions = sum(row.total_conversions for row in monthly)
    days = [row.avg_days_to_convert for row in monthly if row.avg_days_to_convert is not None]
    return AcquisitionKPIs(
        total_signups=signups,
        total_conversions=conversions,
        conversion_rate=_rate(conversions, signups),
        avg_days_to_convert=round(sum(days) / len(days), 1) if days else None,
    )


def conversion_funnel(signups: int, active_users: int, paid: int) -> ConversionFunnel:
    return ConversionFunnel(
        signups=signups,
        active_users=active_users,
        paid=paid,
        activation_rate=_rate(active_users, signups),
        paid_rate=_rate(paid, active_users),
        overall_rate=_rate(paid, signups),
        inactive=signups - active_users,
        free=active_users - paid,
    )


def conversion_trend(rows: Sequence[ConversionStatsRow], view: ConversionView) -> List[ConversionTrendPoint]:
    points = []
    for row in rows:
        period = (row.signup_month if view == "monthly" else row.signup_week) or ""
        points.append(ConversionTrendPoint(
            period=period,
            label=short_month_label(period) if view == "monthly" else week_label(period),
            signups=row.total_signups,
            conversions=row.total_conversions,
            rate=row.conversion_rate,
        ))
    return points


def source_shares(rows: Sequence[ReferralSourceRow], top: int = TOP_SOURCES) -> List[SourceShare]:
    """Referral sources with users, largest first."""
    ranked = sorted((r for r in rows if r.total_users > 0), key=lambda r: r.total_users, reverse=True)
    return [
        SourceShare(name=r.referral_source, users=r.total_users, conversions=r.converted_users, rate=r.conversion_rate)
        for r in ranked[:top]
    ]


def split_geography(rows: Sequence[GeographyRow]) -> Tuple[List[GeographyRow], Optional[int]]:
    """Converted geographies, and the user count of the "Not Converted" row if present."""
    converted = [row for row in rows if row.geography != NOT_CONVERTED]
    not_converted = next((row.total_users for row in rows if row.geography == NOT_CONVERTED), None)
    return converted, not_converted


def sort_cohorts(cohorts: Sequence[Cohort], sort_key: str = "cohort", direction: str = "desc") -> List[Cohort]:
    """
    Sort cohorts by one column; cohorts without a value come last in both directions.

    Raises:
        ValueError: If sort_key is not a sortable cohort column
    """
    if sort_key not in COHORT_SORT_KEYS:
        raise ValueError(f"Cannot sort cohorts by {sort_key!r}")

    present = [c for c in cohorts if getattr(c, sort_key) is not None]
    missing = [c for c in cohorts if getattr(c, sort_key) is None]
    present.sort(key=lambda c: getattr(c, sort_key), reverse=direction == "desc")
    return present + missing


class AcquisitionService:
    """Acquisition overview and signup cohorts of the analytics schema."""

    def __init__(self, store: DataStore):
        self.store = store

    async def _rows(self, view: str, model: Any, **query) -> list:
        return rows_to_models(await self.store.select(view, **query), model)

    async def _active_users(self) -> Optional[int]:
        rows = await self.store.select(RETENTION_VIEW, "total_users", limit=1)
        return rows[0].get("total_users") if rows else None

    async def overview(self, view: ConversionView = "monthly") -> AcquisitionOverview:
        """
        Build the acquisition overview.

        KPIs always cover the monthly stats; view picks the trend granularity.

        Raises:
            DataStoreError: If any conversion view other than retention_summary fails
        """
        monthly, weekly, sources, geography, active_users = await asyncio.gather(
            self._rows(MONTHLY_CONVERSION_VIEW, ConversionStatsRow, order="signup_month"),
            self._rows(WEEKLY_CONVERSION_VIEW, ConversionStatsRow, order="signup_week"),
            self._rows(REFERRAL_SOURCE_VIEW, ReferralSourceRow, order="total_users", desc=True),
            self._rows(GEOGRAPHY_VIEW, GeographyRow),
            optional(self._active_users(), "active users"),
        )

        kpis = acquisition_kpis(monthly)
        converted, not_converted = split_geography(geography)
        logger.info(
            f"Acquisition overview: {kpis.total_signups} signups, "
            f"{kpis.total_conversions} conversions over {len(monthly)} months"
        )

        return AcquisitionOverview(
            view=view,
            kpis=kpis,
            funnel=conversion_funnel(kpis.total_signups, active_users or 0, kpis.total_conversions),
            trend=conversion_trend(monthly if view == "monthly" else weekly, view),
            sources=source_shares(sources),
            geography=converted,
            not_converted_users=not_converted,
        )

    async def cohorts(self, sort_key: str = "cohort", sort_direction: str = "desc") -> CohortReport:
        """
        Signup cohorts sorted by one column, with the top referrers by conversions.

        Raises:
            ValueError: If sort_key is not a sortable cohort column
            DataStoreError: If either view cannot be fetched
        """
        if sort_key not in COHORT_SORT_KEYS:
            raise ValueError(f"Cannot sort cohorts by {sort_key!r}")

        cohorts, referrers = await asyncio.gather(
            self._rows(COHORT_VIEW, Cohort, order="cohort", desc=True),
            self._rows(
                REFERRAL_CODE_VIEW,
                Referrer,
                order="converted_referrals",
                desc=True,
                limit=TOP_REFERRERS,
            ),
        )
        for cohort in cohorts:
            cohort.label = month_label(cohort.cohort)

        return CohortReport(
            sort_key=sort_key,
            sort_direction=sort_direction,
            cohorts=sort_cohorts(cohorts, sort_key, sort_direction),
            top_referrers=sorted(referrers, key=lambda r: r.converted_referrals, reverse=True),
        )
