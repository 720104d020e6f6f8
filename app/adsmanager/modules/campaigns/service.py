"""
Campaign service layer.
Handles campaign CRUD, the activation guard, status transitions and the
cascading delete (ads -> analytics -> campaign) in one transaction.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Iterable

from app.adsmanager.audit import record_event
from app.adsmanager.modules.ads.models import Ad
from app.adsmanager.modules.analytics import service as analytics_service
from app.adsmanager.modules.analytics.models import CampaignAnalytics
from app.adsmanager.modules.notifications.service import send_notification
from app.adsmanager.uploads import BUCKET_IMAGES, BUCKET_VIDEOS, remove_media

from .models import Campaign

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User
    from app.adsmanager.storage import Storage

logger = logging.getLogger(__name__)

VALID_STATUSES = ("draft", "active", "paused")

TARGET_AUDIENCES = (
    ("young-adults", "Young adults (18-25)"),
    ("professionals", "Professionals (25-40)"),
    ("families", "Families"),
    ("students", "Students"),
    ("business-owners", "Business owners"),
    ("all", "All audiences"),
)

OBJECTIVES = (
    ("brand_awareness", "Brand awareness"),
    ("lead_generation", "Lead generation"),
    ("sales_conversion", "Sales conversion"),
    ("app_downloads", "App downloads"),
    ("website_traffic", "Website traffic"),
)

MISSING_FIELDS_MESSAGE = "Please fill in campaign name and budget."
NO_ADS_MESSAGE = "No ads: add at least one ad before activating this campaign."
INCOMPLETE_ADS_MESSAGE = "Incomplete ad content: at least one ad needs media, a headline and a description."

# Largest accepted amount in minor units; keeps derived analytics within BIGINT.
MAX_AMOUNT_CENTS = 100_000_000_000_000


def parse_budget_cents(raw: str | int | float | None) -> int | None:
    """Parse a major-unit amount ("12.50") into minor units (1250). None if blank."""
    if raw is None:
        return None
    text = str(raw).strip().replace(",", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
        if not amount.is_finite():
            raise ValueError("Budget must be a number.")
        if amount < 0:
            raise ValueError("Budget cannot be negative.")
        cents = int((amount * 100).quantize(Decimal("1")))
    except InvalidOperation:
        raise ValueError("Budget must be a number.")
    if cents > MAX_AMOUNT_CENTS:
        raise ValueError("Budget is too large.")
    return cents


def _clean_objectives(raw: Iterable[str] | None) -> list[str]:
    allowed = {key for key, _ in OBJECTIVES}
    out: list[str] = []
    for item in raw or []:
        key = (item or "").strip()
        if key in allowed and key not in out:
            out.append(key)
    return out


def validate_campaign_payload(payload: dict) -> list[str]:
    """Validate campaign creation/update payload. Returns list of errors."""
    errors: list[str] = []
    name = (payload.get("name") or "").strip()
    budget_raw = (str(payload.get("budget") or "")).strip()
    if not name or not budget_raw:
        errors.append(MISSING_FIELDS_MESSAGE)
    if budget_raw:
        try:
            parse_budget_cents(budget_raw)
        except ValueError as e:
            errors.append(str(e))
    if len(name) > 255:
        errors.append("Campaign name must be 255 characters or fewer.")
    status = (payload.get("status") or "").strip()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return errors


def get_campaign_for_user(s: "Session", campaign_id: int, user: "User") -> Campaign | None:
    return (
        s.query(Campaign)
        .filter(Campaign.id == campaign_id, Campaign.user_id == user.id)
        .one_or_none()
    )


def list_campaigns(s: "Session", user: "User", status: str | None = None) -> list[Campaign]:
    q = s.query(Campaign).filter(Campaign.user_id == user.id)
    if status:
        q = q.filter(Campaign.status == status)
    return q.order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()


def list_ads_for_campaign(s: "Session", campaign: Campaign) -> list[Ad]:
    return (
        s.query(Ad)
        .filter(Ad.campaign_id == campaign.id, Ad.user_id == campaign.user_id)
        .order_by(Ad.created_at.asc(), Ad.id.asc())
        .all()
    )


def create_campaign(s: "Session", payload: dict, user: "User") -> Campaign:
    """Create a new campaign. Always starts as draft; activation goes through the guard."""
    now = datetime.utcnow()
    campaign = Campaign(
        user_id=user.id,
        name=(payload.get("name") or "").strip(),
        description=(payload.get("description") or "").strip() or None,
        status="draft",
        budget_cents=parse_budget_cents(payload.get("budget")) or 0,
        target_audience=(payload.get("target_audience") or "").strip() or None,
        objectives=_clean_objectives(payload.get("objectives")),
        impressions=0,
        clicks=0,
        conversions=0,
        created_at=now,
        updated_at=now,
    )
    s.add(campaign)
    s.flush()

    record_event(
        s,
        actor=user,
        action="campaign.create",
        entity_type="Campaign",
        entity_id=str(campaign.id),
        metadata={"name": campaign.name, "budget_cents": campaign.budget_cents},
    )
    return campaign


def update_campaign(s: "Session", campaign: Campaign, payload: dict, user: "User") -> Campaign:
    """Update name, budget, audience, description and objectives. Status is not touched here."""
    changes = {}

    new_name = (payload.get("name") or "").strip()
    if new_name and new_name != campaign.name:
        changes["name"] = {"old": campaign.name, "new": new_name}
        campaign.name = new_name

    if "budget" in payload:
        new_budget = parse_budget_cents(payload.get("budget"))
        if new_budget is not None and new_budget != campaign.budget_cents:
            changes["budget_cents"] = {"old": campaign.budget_cents, "new": new_budget}
            campaign.budget_cents = new_budget

    new_audience = (payload.get("target_audience") or "").strip() or None
    if new_audience != campaign.target_audience:
        changes["target_audience"] = {"old": campaign.target_audience, "new": new_audience}
        campaign.target_audience = new_audience

    new_description = (payload.get("description") or "").strip() or None
    if new_description != campaign.description:
        changes["description"] = {"old": "...", "new": "..."}  # don't log full text
        campaign.description = new_description

    if "objectives" in payload:
        new_objectives = _clean_objectives(payload.get("objectives"))
        if new_objectives != (campaign.objectives or []):
            changes["objectives"] = {"old": campaign.objectives, "new": new_objectives}
            campaign.objectives = new_objectives

    campaign.updated_at = datetime.utcnow()

    if changes:
        record_event(
            s,
            actor=user,
            action="campaign.edit",
            entity_type="Campaign",
            entity_id=str(campaign.id),
            metadata={"name": campaign.name, "changes": changes},
        )
    return campaign


def can_activate(campaign: Campaign, ads: list[Ad]) -> tuple[bool, list[str]]:
    """
    Activation guard: at least one ad with media (image or video), a headline
    and a description.
    """
    if not ads:
        return False, [NO_ADS_MESSAGE]
    if not any(ad.has_complete_content for ad in ads):
        return False, [INCOMPLETE_ADS_MESSAGE]
    return True, []


def set_campaign_status(s: "Session", campaign: Campaign, new_status: str, user: "User") -> tuple[bool, list[str]]:
    """
    Move a campaign to new_status. Activation is checked against the campaign's ads.
    The first activation seeds today's analytics row.
    """
    if new_status not in VALID_STATUSES:
        return False, [f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}"]
    if new_status == campaign.status:
        return True, []

    if new_status == "active":
        ok, errors = can_activate(campaign, list_ads_for_campaign(s, campaign))
        if not ok:
            return False, errors

    old_status = campaign.status
    campaign.status = new_status
    campaign.updated_at = datetime.utcnow()

    if new_status == "active":
        has_history = (
            s.query(CampaignAnalytics.id).filter(CampaignAnalytics.campaign_id == campaign.id).first()
            is not None
        )
        if not has_history:
            analytics_service.start_campaign_analytics(s, campaign)

    record_event(
        s,
        actor=user,
        action="campaign.status",
        entity_type="Campaign",
        entity_id=str(campaign.id),
        metadata={"name": campaign.name, "from": old_status, "to": new_status},
    )
    verb = "activated" if new_status == "active" else new_status
    send_notification(
        s,
        user_id=user.id,
        notification_type="campaign",
        title=f"Campaign {verb}",
        message=f"{campaign.name} has been {verb}.",
        data={"campaign_id": campaign.id, "status": new_status},
    )
    return True, []


def toggle_campaign_status(s: "Session", campaign: Campaign, user: "User") -> tuple[bool, list[str]]:
    """active -> paused; draft/paused -> active (through the guard)."""
    new_status = "paused" if campaign.status == "active" else "active"
    return set_campaign_status(s, campaign, new_status, user)


def delete_campaign(
    s: "Session", campaign: Campaign, user: "User", storage: "Storage | None" = None
) -> dict[str, int]:
    """
    Delete ads, then analytics, then the campaign. The caller commits once;
    any failure rolls the whole cascade back. Uploaded creatives are removed
    best effort once the rows are gone.
    """
    ads_q = s.query(Ad).filter(Ad.campaign_id == campaign.id, Ad.user_id == user.id)
    media = [
        (bucket, url)
        for ad in ads_q.all()
        for bucket, url in ((BUCKET_IMAGES, ad.image_url), (BUCKET_VIDEOS, ad.video_url))
        if url
    ]
    ads_deleted = ads_q.delete(synchronize_session=False)
    analytics_deleted = analytics_service.delete_campaign_analytics(s, campaign.id)
    campaign_id, name = campaign.id, campaign.name
    s.delete(campaign)
    s.flush()

    if storage is not None:
        for bucket, url in media:
            remove_media(storage, bucket=bucket, url=url, user_id=user.id)

    record_event(
        s,
        actor=user,
        action="campaign.delete",
        entity_type="Campaign",
        entity_id=str(campaign_id),
        metadata={"name": name, "ads_deleted": ads_deleted, "analytics_deleted": analytics_deleted},
    )
    logger.info("Deleted campaign %s (ads=%s analytics=%s)", campaign_id, ads_deleted, analytics_deleted)
    return {"ads": ads_deleted, "analytics": analytics_deleted}


def campaign_totals(campaigns: Iterable[Campaign]) -> dict[str, float]:
    campaigns = list(campaigns)
    impressions = sum(c.impressions or 0 for c in campaigns)
    clicks = sum(c.clicks or 0 for c in campaigns)
    conversions = sum(c.conversions or 0 for c in campaigns)
    return {
        "campaigns": len(campaigns),
        "active": sum(1 for c in campaigns if c.status == "active"),
        "impressions": impressions,
        "clicks": clicks,
        "conversions": conversions,
        "budget_cents": sum(c.budget_cents or 0 for c in campaigns),
        "ctr": round(clicks / impressions * 100, 2) if impressions else 0.0,
        "conversion_rate": round(conversions / clicks * 100, 1) if clicks else 0.0,
    }


def campaigns_by_status(campaigns: Iterable[Campaign]) -> dict[str, int]:
    counts = {status: 0 for status in VALID_STATUSES}
    for c in campaigns:
        if c.status in counts:
            counts[c.status] += 1
    return counts
