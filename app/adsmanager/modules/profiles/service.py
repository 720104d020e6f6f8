from __future__ import annotations

import csv
import io
import re
from datetime import date, datetime
from typing import TYPE_CHECKING

from app.adsmanager.audit import record_event
from app.adsmanager.modules.campaigns.models import Campaign

from .models import Profile

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

LANGUAGES = (("en", "English"), ("my", "Myanmar"))
TIMEZONES = (("Asia/Yangon", "Asia/Yangon (MMT)"), ("UTC", "UTC"))
CURRENCIES = (("MMK", "Myanmar Kyat (MMK)"), ("USD", "US Dollar (USD)"))
THEMES = (("light", "Light"), ("dark", "Dark"), ("system", "System"))
DATA_RETENTION = (("30", "30 days"), ("90", "90 days"), ("365", "1 year"))
EXPORT_FORMATS = (("csv", "CSV"),)

DEFAULT_SETTINGS: dict = {
    "language": "en",
    "timezone": "Asia/Yangon",
    "currency": "MMK",
    "theme": "light",
    "data_retention": "90",
    "export_format": "csv",
    "auto_save": True,
    "two_factor": False,
    "analytics_sharing": False,
    "session_timeout": True,
}

_CHOICES = {
    "language": LANGUAGES,
    "timezone": TIMEZONES,
    "currency": CURRENCIES,
    "theme": THEMES,
    "data_retention": DATA_RETENTION,
    "export_format": EXPORT_FORMATS,
}

CSV_HEADER = ["Campaign Name", "Status", "Budget", "Impressions", "Clicks", "Conversions", "Created Date"]


def get_profile(s: "Session", user: "User") -> Profile | None:
    return s.query(Profile).filter(Profile.user_id == user.id).one_or_none()


def get_or_create_profile(s: "Session", user: "User") -> Profile:
    profile = get_profile(s, user)
    if profile is None:
        now = datetime.utcnow()
        profile = Profile(
            user_id=user.id,
            contact_email=user.email,
            settings=dict(DEFAULT_SETTINGS),
            created_at=now,
            updated_at=now,
        )
        s.add(profile)
        s.flush()
    return profile


def validate_profile_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    email = (payload.get("contact_email") or "").strip()
    if email and not _EMAIL_RE.match(email):
        errors.append("Contact email is not a valid email address.")
    if len((payload.get("business_name") or "").strip()) > 255:
        errors.append("Business name must be 255 characters or fewer.")
    if len((payload.get("phone") or "").strip()) > 64:
        errors.append("Phone number is too long.")
    return errors


def update_profile(s: "Session", profile: Profile, payload: dict, user: "User") -> Profile:
    changes = {}
    for field in ("business_name", "contact_email", "phone"):
        new_value = (payload.get(field) or "").strip() or None
        if new_value != getattr(profile, field):
            changes[field] = {"old": getattr(profile, field), "new": new_value}
            setattr(profile, field, new_value)
    profile.updated_at = datetime.utcnow()

    if changes:
        record_event(
            s,
            actor=user,
            action="profile.edit",
            entity_type="Profile",
            entity_id=str(profile.id),
            metadata={"changes": changes},
        )
    return profile


def effective_settings(profile: Profile | None) -> dict:
    merged = dict(DEFAULT_SETTINGS)
    if profile is not None and profile.settings:
        merged.update({k: v for k, v in profile.settings.items() if k in DEFAULT_SETTINGS})
    return merged


def update_settings(s: "Session", profile: Profile, values: dict, user: "User") -> dict:
    """
    Merge submitted general preferences into Profile.settings.

    Choice fields outside their allowed values are ignored; boolean toggles are
    taken as given (an unchecked box arrives as False).
    """
    merged = effective_settings(profile)
    for key, default in DEFAULT_SETTINGS.items():
        if key not in values:
            continue
        if isinstance(default, bool):
            merged[key] = bool(values[key])
            continue
        value = str(values[key] or "").strip()
        if value in {k for k, _ in _CHOICES[key]}:
            merged[key] = value

    # Reassign so the JSON column is flagged dirty.
    profile.settings = merged
    profile.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="profile.settings",
        entity_type="Profile",
        entity_id=str(profile.id),
        metadata={"settings": merged},
    )
    return merged


def export_filename(today: date | None = None) -> str:
    today = today or date.today()
    return f"viber-ads-data-{today.isoformat()}.csv"


def export_campaigns_csv(s: "Session", user: "User") -> tuple[bytes, int]:
    """Render the user's campaigns as CSV. Returns (bytes, row_count)."""
    campaigns = (
        s.query(Campaign)
        .filter(Campaign.user_id == user.id)
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .all()
    )

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(CSV_HEADER)
    for c in campaigns:
        w.writerow(
            [
                c.name,
                c.status,
                f"{(c.budget_cents or 0) / 100:.2f}",
                c.impressions or 0,
                c.clicks or 0,
                c.conversions or 0,
                c.created_at.date().isoformat() if c.created_at else "",
            ]
        )

    record_event(
        s,
        actor=user,
        action="campaign.export",
        entity_type="Campaign",
        entity_id="export",
        metadata={"row_count": len(campaigns)},
    )
    return out.getvalue().encode("utf-8"), len(campaigns)
