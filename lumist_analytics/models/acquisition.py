"""
Acquisition models: signup conversion views (monthly/weekly stats, referral
sources, geography, signup cohorts, referral codes) and the overview and
cohort view models built from them.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConversionView = Literal["monthly", "weekly"]


class ConversionStatsRow(BaseModel):
    """Row of monthly_conversion_stats (signup_month) or weekly_conversion_stats (signup_week)."""

    model_config = ConfigDict(extra="ignore")

    signup_month: str | None = Field(None, description="YYYY-MM")
    signup_week: str | None = Field(None, description="YYYY-Www")
    total_signups: int = 0
    total_conversions: int = 0
    conversion_rate: float = 0.0
    avg_days_to_convert: float | None = None

    @field_validator("total_signups", "total_conversions", "conversion_rate", mode="before")
    @classmethod
    def _null_is_zero(cls, value):
        return 0 if value is None else value


class ReferralSourceRow(BaseModel):
    """Row of referral_source_performance."""

    model_config = ConfigDict(extra="ignore")

    referral_source: str = "Unknown"
    total_users: int = 0
    converted_users: int = 0
    conversion_rate: float = 0.0

    @field_validator("referral_source", mode="before")
    @classmethod
    def _null_source_is_unknown(cls, value):
        return value or "Unknown"

    @field_validator("total_users", "converted_users", "conversion_rate", mode="before")
    @classmethod
    def _null_is_zero(cls, value):
        return 0 if value is None else value


class GeographyRow(BaseModel):
    """Row of geography_conversion_stats ("Vietnam", "Global" or "Not Converted")."""

    model_config = ConfigDict(extra="ignore")

    geography: str
    total_users: int = 0
    converted_users: int = 0
    conversion_rate: float = 0.0
    total_revenue_usd: float = 0.0

    @field_validator("total_users", "converted_users", "conversion_rate", "total_revenue_usd", mode="before")
    @classmethod
    def _null_is_zero(cls, value):
        return 0 if value is None else value


class Cohort(BaseModel):
    """
    Row of signup_cohort_conversion: users who signed up in one calendar month
    and how (and how fast) they converted to paid.
    Counts the view leaves NULL stay None.
    """

    model_config = ConfigDict(extra="ignore")

    cohort: str = Field(..., description="Signup month (YYYY-MM)")
    label: str | None = Field(None, description="'Jan 2025', filled on read")
    cohort_size: int | None = None
    total_converted: int | None = None
    conversion_rate: float | None = None
    converted_day_0: int | None = None
    converted_within_7d: int | None = None
    converted_within_30d: int | None = None
    converted_after_30d: int | None = None
    avg_days_to_convert: float | None = None
    vietnam_conversions: int | None = None
    global_conversions: int | None = None


class Referrer(BaseModel):
    """Row of referral_code_performance."""

    model_config = ConfigDict(extra="ignore")

    referrer_id: str | None = None
    referrer_name: str | None = None
    referrer_email: str | None = None
    referral_code: str | None = None
    total_referrals: int = 0
    converted_referrals: int = 0
    conversion_rate: float | None = None
    total_revenue_usd: float = 0.0

    @field_validator("total_referrals", "converted_referrals", "total_revenue_usd", mode="before")
    @classmethod
    def _null_is_zero(cls, value):
        return 0 if value is None else value


class AcquisitionKPIs(BaseModel):
    total_signups: int = 0
    total_conversions: int = 0
    conversion_rate: float = Field(0.0, description="Signup -> paid, in percent")
    avg_days_to_convert: float | None = Field(None, description="Mean over months that report it")


class ConversionFunnel(BaseModel):
    """Signups -> active users -> paid users."""

    signups: int = 0
    active_users: int = 0
    paid: int = 0
    activation_rate: float = 0.0
    paid_rate: float = 0.0
    overall_rate: float = 0.0
    inactive: int = 0
    free: int = 0


class ConversionTrendPoint(BaseModel):
    period: str
    label: str
    signups: int = 0
    conversions: int = 0
    rate: float = 0.0


class SourceShare(BaseModel):
    name: str
    users: int
    conversions: int
    rate: float


class AcquisitionOverview(BaseModel):
    """Acquisition overview page."""

    view: ConversionView
    kpis: AcquisitionKPIs
    funnel: ConversionFunnel
    trend: list[ConversionTrendPoint] = Field(default_factory=list)
    sources: list[SourceShare] = Field(default_factory=list)
    geography: list[GeographyRow] = Field(default_factory=list)
    not_converted_users: int | None = None


class CohortReport(BaseModel):
    """Signup cohorts with the top referrers."""

    sort_key: str
    sort_direction: Literal["asc", "desc"]
    cohorts: list[Cohort] = Field(default_factory=list)
    top_referrers: list[Referrer] = Field(default_factory=list)
