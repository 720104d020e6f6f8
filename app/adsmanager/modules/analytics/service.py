"""
Synthetic analytics generator and read-side aggregates.

The generator is simple arithmetic with hard-coded ratios:
- start:  reach ~10% of budget, impressions ~20% of budget, clicks ~2% of
          impressions, conversions ~5% of clicks, spend 10% of budget
- update: today's row grows by a time-of-day multiplier; the first update of
          a day starts from the campaign totals scaled by a random 0.9-1.1
After either action the campaign's denormalized totals are re-summed from
all of its daily rows.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import func

from app.adsmanager.modules.analytics.models import CampaignAnalytics
from app.adsmanager.modules.campaigns.models import Campaign

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User

logger = logging.getLogger(__name__)

ACTIONS = ("start", "update")

REACH_RATIO = 0.1
IMPRESSIONS_RATIO = 0.2
CLICK_THROUGH_RATIO = 0.02
CONVERSION_RATIO = 0.05
START_SPEND_RATIO = 0.1
DAILY_SPEND_RATIO = 0.05

MIN_REACH = 50
MIN_IMPRESSIONS = 100
MIN_CLICKS = 5
MIN_CONVERSIONS = 1

# Fallbacks for the first update of a day when the campaign has no totals yet
FALLBACK_REACH = 100
FALLBACK_IMPRESSIONS = 150
FALLBACK_CLICKS = 10
FALLBACK_CONVERSIONS = 2

METRIC_FIELDS = ("reach", "impressions", "clicks", "conversions", "spend_cents")


@dataclass(frozen=True)
class DailyMetrics:
    reach: int
    impressions: int
    clicks: int
    conversions: int
    spend_cents: int


def growth_multiplier(hour_of_day: int) -> float:
    """Daily growth pattern by hour (0-23)."""
    if 6 <= hour_of_day <= 10:
        return 1.05  # morning peak
    if 11 <= hour_of_day <= 14:
        return 1.03  # lunch
    if 18 <= hour_of_day <= 22:
        return 1.08  # evening peak
    if hour_of_day >= 23 or hour_of_day <= 5:
        return 1.01  # overnight
    return 1.02


def initial_metrics(budget_cents: int) -> DailyMetrics:
    # Ratios apply to the budget in major units; spend stays in cents.
    budget_cents = max(0, budget_cents or 0)
    budget = budget_cents // 100
    impressions = max(MIN_IMPRESSIONS, math.floor(budget * IMPRESSIONS_RATIO))
    clicks = max(MIN_CLICKS, math.floor(impressions * CLICK_THROUGH_RATIO))
    return DailyMetrics(
        reach=max(MIN_REACH, math.floor(budget * REACH_RATIO)),
        impressions=impressions,
        clicks=clicks,
        conversions=max(MIN_CONVERSIONS, math.floor(clicks * CONVERSION_RATIO)),
        spend_cents=math.floor(budget_cents * START_SPEND_RATIO),
    )


def grown_metrics(row: CampaignAnalytics, multiplier: float) -> DailyMetrics:
    return DailyMetrics(
        reach=math.floor((row.reach or 0) * multiplier),
        impressions=math.floor((row.impressions or 0) * multiplier),
        clicks=math.floor((row.clicks or 0) * multiplier),
        conversions=math.floor((row.conversions or 0) * multiplier),
        spend_cents=math.floor((row.spend_cents or 0) * multiplier),
    )


def first_update_metrics(campaign: Campaign, base_growth: float) -> DailyMetrics:
    return DailyMetrics(
        reach=math.floor((campaign.impressions or FALLBACK_REACH) * base_growth),
        impressions=math.floor((campaign.impressions or FALLBACK_IMPRESSIONS) * base_growth),
        clicks=math.floor((campaign.clicks or FALLBACK_CLICKS) * base_growth),
        conversions=math.floor((campaign.conversions or FALLBACK_CONVERSIONS) * base_growth),
        spend_cents=math.floor((campaign.budget_cents or 0) * DAILY_SPEND_RATIO),
    )


def get_day_row(s: "Session", campaign_id: int, day: date) -> CampaignAnalytics | None:
    return (
        s.query(CampaignAnalytics)
        .filter(CampaignAnalytics.campaign_id == campaign_id, CampaignAnalytics.date == day)
        .one_or_none()
    )


def _upsert_day(s: "Session", campaign_id: int, day: date, metrics: DailyMetrics) -> CampaignAnalytics:
    row = get_day_row(s, campaign_id, day)
    if row is None:
        row = CampaignAnalytics(campaign_id=campaign_id, date=day)
        s.add(row)
    for field, value in asdict(metrics).items():
        setattr(row, field, value)
    s.flush()
    return row


def resum_campaign_totals(s: "Session", campaign: Campaign) -> None:
    s.flush()
    impressions, clicks, conversions = (
        s.query(
            func.coalesce(func.sum(CampaignAnalytics.impressions), 0),
            func.coalesce(func.sum(CampaignAnalytics.clicks), 0),
            func.coalesce(func.sum(CampaignAnalytics.conversions), 0),
        )
        .filter(CampaignAnalytics.campaign_id == campaign.id)
        .one()
    )
    campaign.impressions = int(impressions)
    campaign.clicks = int(clicks)
    campaign.conversions = int(conversions)


def start_campaign_analytics(s: "Session", campaign: Campaign, *, now: datetime | None = None) -> CampaignAnalytics:
    now = now or datetime.utcnow()
    row = _upsert_day(s, campaign.id, now.date(), initial_metrics(campaign.budget_cents))
    resum_campaign_totals(s, campaign)
    logger.info("Initialized analytics for campaign %s", campaign.id)
    return row


def update_campaign_analytics(
    s: "Session",
    campaign: Campaign,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> CampaignAnalytics:
    now = now or datetime.utcnow()
    rng = rng or random.Random()
    today = now.date()

    existing = get_day_row(s, campaign.id, today)
    if existing is not None:
        metrics = grown_metrics(existing, growth_multiplier(now.hour))
    else:
        metrics = first_update_metrics(campaign, rng.random() * 0.2 + 0.9)

    row = _upsert_day(s, campaign.id, today, metrics)
    resum_campaign_totals(s, campaign)
    logger.info("Updated analytics for campaign %s", campaign.id)
    return row


def run_analytics_action(
    s: "Session",
    campaign_id: int,
    action: str,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> CampaignAnalytics:
    """Entry point shared by the function endpoint and the dashboard poll."""
    if action not in ACTIONS:
        raise ValueError(f"Invalid action: {action!r} (expected 'start' or 'update')")
    campaign = s.get(Campaign, campaign_id)
    if campaign is None:
        raise ValueError("Campaign not found")
    if action == "start":
        return start_campaign_analytics(s, campaign, now=now)
    return update_campaign_analytics(s, campaign, now=now, rng=rng)


def refresh_active_campaigns(
    s: "Session",
    user: "User",
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> int:
    """Run an update for each of the user's active campaigns. Returns the count."""
    campaigns = (
        s.query(Campaign)
        .filter(Campaign.user_id == user.id, Campaign.status == "active")
        .order_by(Campaign.id.asc())
        .all()
    )
    for c in campaigns:
        update_campaign_analytics(s, c, now=now, rng=rng)
    return len(campaigns)


def delete_campaign_analytics(s: "Session", campaign_id: int) -> int:
    return (
        s.query(CampaignAnalytics)
        .filter(CampaignAnalytics.campaign_id == campaign_id)
        .delete(synchronize_session=False)
    )


# ---------- Read side ----------
def list_analytics(s: "Session", user: "User", campaign_id: int | None = None) -> list[CampaignAnalytics]:
    q = (
        s.query(CampaignAnalytics)
        .join(Campaign, Campaign.id == CampaignAnalytics.campaign_id)
        .filter(Campaign.user_id == user.id)
    )
    if campaign_id is not None:
        q = q.filter(CampaignAnalytics.campaign_id == campaign_id)
    return q.order_by(CampaignAnalytics.date.desc(), CampaignAnalytics.id.desc()).all()


def total_analytics(rows: Iterable[CampaignAnalytics]) -> dict[str, int]:
    totals = {field: 0 for field in METRIC_FIELDS}
    for row in rows:
        for field in METRIC_FIELDS:
            totals[field] += getattr(row, field) or 0
    return totals


def analytics_for_date_range(rows: Iterable[CampaignAnalytics], start: date, end: date) -> list[CampaignAnalytics]:
    return [r for r in rows if start <= r.date <= end]


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def summary_metrics(totals: dict[str, int]) -> dict[str, float]:
    """CTR and conversion rate in percent; CPC and CPA in major currency units."""
    spend = totals.get("spend_cents", 0) / 100
    clicks = totals.get("clicks", 0)
    return {
        "ctr": round(_ratio(clicks, totals.get("impressions", 0)) * 100, 2),
        "conversion_rate": round(_ratio(totals.get("conversions", 0), clicks) * 100, 2),
        "cpc": round(_ratio(spend, clicks), 2),
        "cpa": round(_ratio(spend, totals.get("conversions", 0)), 2),
    }


def daily_series(rows: Iterable[CampaignAnalytics]) -> list[dict]:
    """Per-day totals across campaigns, oldest first, for charting."""
    by_day: dict[date, dict[str, int]] = {}
    for row in rows:
        bucket = by_day.setdefault(row.date, {field: 0 for field in METRIC_FIELDS})
        for field in METRIC_FIELDS:
            bucket[field] += getattr(row, field) or 0

    series = []
    for day in sorted(by_day):
        totals = by_day[day]
        metrics = summary_metrics(totals)
        series.append(
            {
                "date": day.isoformat(),
                **totals,
                "spend": totals["spend_cents"] / 100,
                "ctr": metrics["ctr"],
                "cpc": metrics["cpc"],
            }
        )
    return series


def monthly_impressions(s: "Session", user: "User", today: date | None = None) -> int:
    today = today or datetime.utcnow().date()
    month_start = today.replace(day=1)
    total = (
        s.query(func.coalesce(func.sum(CampaignAnalytics.impressions), 0))
        .join(Campaign, Campaign.id == CampaignAnalytics.campaign_id)
        .filter(Campaign.user_id == user.id, CampaignAnalytics.date >= month_start)
        .scalar()
    )
    return int(total or 0)
