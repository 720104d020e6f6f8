from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from app.adsmanager.audit import record_event
from app.adsmanager.modules.campaigns.service import parse_budget_cents
from app.adsmanager.uploads import BUCKET_IMAGES, BUCKET_VIDEOS, remove_media

from .models import Ad

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User
    from app.adsmanager.modules.campaigns.models import Campaign
    from app.adsmanager.storage import Storage


AD_TYPES = ("image", "video")
VALID_STATUSES = ("draft", "active", "paused")

CALLS_TO_ACTION = (
    ("learn-more", "Learn More"),
    ("shop-now", "Shop Now"),
    ("sign-up", "Sign Up"),
    ("download", "Download"),
    ("contact-us", "Contact Us"),
)


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _is_media_url(value: str) -> bool:
    # Uploaded creatives on the local backend are served from /media/...
    return value.startswith("/media/") or _is_http_url(value)


def parse_tags(raw: str | list | None) -> list[str]:
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else str(raw).split(",")
    tags: list[str] = []
    for item in items:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def build_performance_data(payload: dict) -> dict:
    data: dict = {}
    cta = (payload.get("call_to_action") or "").strip()
    if cta:
        data["call_to_action"] = cta
    audience = (payload.get("target_audience") or "").strip()
    if audience:
        data["target_audience"] = audience
    duration = str(payload.get("duration_days") or "").strip()
    if duration.isdigit():
        data["duration_days"] = int(duration)
    tags = parse_tags(payload.get("tags"))
    if tags:
        data["tags"] = tags
    return data


def validate_ad_payload(payload: dict) -> list[str]:
    """
    Validate ad creation/update payload. Returns list of errors.

    Exactly one media URL must be set and it must match ad_type.
    """
    errors: list[str] = []
    name = (payload.get("name") or "").strip()
    headline = (payload.get("headline") or "").strip()
    description = (payload.get("description") or "").strip()
    ad_type = (payload.get("ad_type") or "").strip()
    image_url = (payload.get("image_url") or "").strip()
    video_url = (payload.get("video_url") or "").strip()
    link_url = (payload.get("link_url") or "").strip()

    if not name:
        errors.append("Ad name is required.")
    if not headline:
        errors.append("Headline is required.")
    if not description:
        errors.append("Description is required.")
    if ad_type not in AD_TYPES:
        errors.append(f"Invalid ad type. Must be one of: {', '.join(AD_TYPES)}")
    else:
        if image_url and video_url:
            errors.append("Provide either an image or a video, not both.")
        elif ad_type == "image":
            if video_url:
                errors.append("Image ads cannot have a video.")
            elif not image_url:
                errors.append("Image ads need an image.")
        elif ad_type == "video":
            if image_url:
                errors.append("Video ads cannot have an image.")
            elif not video_url:
                errors.append("Video ads need a video.")
    for label, value in (("Image", image_url), ("Video", video_url)):
        if value and not _is_media_url(value):
            errors.append(f"{label} URL must be an http(s) link.")
    if link_url and not _is_http_url(link_url):
        errors.append("Link must start with http:// or https://.")
    try:
        parse_budget_cents(payload.get("budget"))
    except ValueError as e:
        errors.append(str(e))
    status = (payload.get("status") or "").strip()
    if status and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return errors


def get_ad_for_user(s: "Session", campaign_id: int, ad_id: int, user: "User") -> Ad | None:
    return (
        s.query(Ad)
        .filter(Ad.id == ad_id, Ad.campaign_id == campaign_id, Ad.user_id == user.id)
        .one_or_none()
    )


def create_ad(s: "Session", campaign: "Campaign", payload: dict, user: "User") -> Ad:
    """Create an ad under campaign. Payload must already pass validate_ad_payload."""
    now = datetime.utcnow()
    ad_type = (payload.get("ad_type") or "image").strip()
    ad = Ad(
        campaign_id=campaign.id,
        user_id=user.id,
        name=(payload.get("name") or "").strip(),
        ad_type=ad_type,
        headline=(payload.get("headline") or "").strip(),
        description=(payload.get("description") or "").strip(),
        link_url=(payload.get("link_url") or "").strip() or None,
        image_url=((payload.get("image_url") or "").strip() or None) if ad_type == "image" else None,
        video_url=((payload.get("video_url") or "").strip() or None) if ad_type == "video" else None,
        budget_cents=parse_budget_cents(payload.get("budget")) or 0,
        status=(payload.get("status") or "draft").strip(),
        performance_data=build_performance_data(payload),
        created_at=now,
        updated_at=now,
    )
    s.add(ad)
    s.flush()

    record_event(
        s,
        actor=user,
        action="ad.create",
        entity_type="Ad",
        entity_id=str(ad.id),
        metadata={"campaign_id": campaign.id, "name": ad.name, "ad_type": ad.ad_type},
    )
    return ad


def update_ad(s: "Session", ad: Ad, payload: dict, user: "User") -> Ad:
    """Update an ad. ad_type is fixed at creation; media follows it."""
    changes = {}

    for field in ("name", "headline", "description"):
        new_value = (payload.get(field) or "").strip()
        if new_value and new_value != getattr(ad, field):
            changes[field] = {"old": getattr(ad, field), "new": new_value}
            setattr(ad, field, new_value)

    new_link = (payload.get("link_url") or "").strip() or None
    if new_link != ad.link_url:
        changes["link_url"] = {"old": ad.link_url, "new": new_link}
        ad.link_url = new_link

    media_field = "video_url" if ad.ad_type == "video" else "image_url"
    new_media = (payload.get(media_field) or "").strip() or None
    if new_media != getattr(ad, media_field):
        changes[media_field] = {"old": getattr(ad, media_field), "new": new_media}
        setattr(ad, media_field, new_media)

    if "budget" in payload:
        new_budget = parse_budget_cents(payload.get("budget")) or 0
        if new_budget != ad.budget_cents:
            changes["budget_cents"] = {"old": ad.budget_cents, "new": new_budget}
            ad.budget_cents = new_budget

    new_perf = build_performance_data(payload)
    if new_perf != (ad.performance_data or {}):
        changes["performance_data"] = {"old": ad.performance_data, "new": new_perf}
        ad.performance_data = new_perf

    ad.updated_at = datetime.utcnow()

    if changes:
        record_event(
            s,
            actor=user,
            action="ad.edit",
            entity_type="Ad",
            entity_id=str(ad.id),
            metadata={"campaign_id": ad.campaign_id, "changes": changes},
        )
    return ad


def toggle_ad_status(s: "Session", ad: Ad, user: "User") -> str:
    new_status = "paused" if ad.status == "active" else "active"
    old_status = ad.status
    ad.status = new_status
    ad.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="ad.status",
        entity_type="Ad",
        entity_id=str(ad.id),
        metadata={"campaign_id": ad.campaign_id, "from": old_status, "to": new_status},
    )
    return new_status


def delete_ad(s: "Session", ad: Ad, user: "User", storage: "Storage | None" = None) -> None:
    """Delete an ad and, best effort, the creative it uploaded."""
    ad_id, campaign_id, name = ad.id, ad.campaign_id, ad.name
    media = [(BUCKET_IMAGES, ad.image_url), (BUCKET_VIDEOS, ad.video_url)]
    s.delete(ad)
    s.flush()

    if storage is not None:
        for bucket, url in media:
            if url:
                remove_media(storage, bucket=bucket, url=url, user_id=user.id)

    record_event(
        s,
        actor=user,
        action="ad.delete",
        entity_type="Ad",
        entity_id=str(ad_id),
        metadata={"campaign_id": campaign_id, "name": name},
    )
