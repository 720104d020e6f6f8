"""
Billing service layer: package catalogue, subscriptions, limits and usage.

Every package is currently unlimited; the limit helpers keep their shape so
the dashboard card can render, but never report a limit as reached.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from app.adsmanager.audit import record_event
from app.adsmanager.modules.analytics.service import monthly_impressions
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.campaigns.service import campaigns_by_status, parse_budget_cents
from app.adsmanager.modules.notifications.service import send_notification

from .models import Package, Subscription

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User

logger = logging.getLogger(__name__)

SUBSCRIPTION_EXISTS_MESSAGE = (
    "Subscription exists: you already have an active subscription. "
    "Please cancel it first to change packages."
)
PACKAGE_MISSING_FIELDS_MESSAGE = "Please fill in package name and price."


class BillingError(ValueError):
    pass


class SubscriptionExistsError(BillingError):
    def __init__(self, message: str = SUBSCRIPTION_EXISTS_MESSAGE):
        super().__init__(message)


class PackageNotFoundError(BillingError):
    pass


class NoActiveSubscriptionError(BillingError):
    pass


@dataclass(frozen=True)
class PackageLimits:
    package_name: str
    campaign_limit: int | None = None  # None = unlimited
    monthly_impressions_limit: int | None = None
    ads_per_campaign_limit: int | None = None


@dataclass(frozen=True)
class UsageStats:
    current_campaigns: int
    current_monthly_impressions: int
    campaigns_by_status: dict[str, int] = field(default_factory=dict)


FREE_TRIAL_LIMITS = PackageLimits(
    package_name="Free Trial",
    campaign_limit=1,
    monthly_impressions_limit=1000,
    ads_per_campaign_limit=3,
)


# ---------- Packages ----------
def list_active_packages(s: "Session") -> list[Package]:
    return (
        s.query(Package)
        .filter(Package.is_active.is_(True))
        .order_by(Package.price_cents.asc(), Package.id.asc())
        .all()
    )


def list_all_packages(s: "Session") -> list[Package]:
    return s.query(Package).order_by(Package.price_cents.asc(), Package.id.asc()).all()


def parse_features(raw: str | list | None) -> list[str]:
    """One feature per line (or a list); order is kept, blanks dropped."""
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else str(raw).splitlines()
    return [str(item).strip() for item in items if str(item).strip()]


def validate_package_payload(payload: dict) -> list[str]:
    errors: list[str] = []
    name = (payload.get("name") or "").strip()
    price_raw = str(payload.get("price") or "").strip()
    if not name or not price_raw:
        errors.append(PACKAGE_MISSING_FIELDS_MESSAGE)
    if price_raw:
        try:
            parse_budget_cents(price_raw)
        except ValueError:
            errors.append("Price must be a non-negative number.")
    return errors


def create_package(s: "Session", payload: dict, user: "User") -> Package:
    now = datetime.utcnow()
    pkg = Package(
        name=(payload.get("name") or "").strip(),
        description=(payload.get("description") or "").strip() or None,
        price_cents=parse_budget_cents(payload.get("price")) or 0,
        features=parse_features(payload.get("features")),
        is_active=bool(payload.get("is_active", True)),
        created_at=now,
        updated_at=now,
    )
    s.add(pkg)
    s.flush()
    record_event(
        s,
        actor=user,
        action="package.create",
        entity_type="Package",
        entity_id=str(pkg.id),
        metadata={"name": pkg.name, "price_cents": pkg.price_cents},
    )
    return pkg


def update_package(s: "Session", pkg: Package, payload: dict, user: "User") -> Package:
    changes = {}
    new_name = (payload.get("name") or "").strip()
    if new_name and new_name != pkg.name:
        changes["name"] = {"old": pkg.name, "new": new_name}
        pkg.name = new_name
    new_description = (payload.get("description") or "").strip() or None
    if new_description != pkg.description:
        changes["description"] = {"old": "...", "new": "..."}
        pkg.description = new_description
    new_price = parse_budget_cents(payload.get("price"))
    if new_price is not None and new_price != pkg.price_cents:
        changes["price_cents"] = {"old": pkg.price_cents, "new": new_price}
        pkg.price_cents = new_price
    new_features = parse_features(payload.get("features"))
    if new_features != (pkg.features or []):
        changes["features"] = {"old": pkg.features, "new": new_features}
        pkg.features = new_features
    pkg.updated_at = datetime.utcnow()
    if changes:
        record_event(
            s,
            actor=user,
            action="package.edit",
            entity_type="Package",
            entity_id=str(pkg.id),
            metadata={"name": pkg.name, "changes": changes},
        )
    return pkg


def toggle_package_active(s: "Session", pkg: Package, user: "User") -> bool:
    pkg.is_active = not pkg.is_active
    pkg.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="package.activate" if pkg.is_active else "package.deactivate",
        entity_type="Package",
        entity_id=str(pkg.id),
        metadata={"name": pkg.name},
    )
    return pkg.is_active


def delete_package(s: "Session", pkg: Package, user: "User") -> None:
    in_use = s.query(Subscription.id).filter(Subscription.package_id == pkg.id).first() is not None
    if in_use:
        raise BillingError("Package has subscriptions; deactivate it instead.")
    pkg_id, name = pkg.id, pkg.name
    s.delete(pkg)
    s.flush()
    record_event(
        s,
        actor=user,
        action="package.delete",
        entity_type="Package",
        entity_id=str(pkg_id),
        metadata={"name": name},
    )


# ---------- Subscriptions ----------
def list_subscriptions(s: "Session", user: "User") -> list[Subscription]:
    return (
        s.query(Subscription)
        .filter(Subscription.user_id == user.id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


def get_active_subscription(s: "Session", user: "User") -> Subscription | None:
    return (
        s.query(Subscription)
        .filter(Subscription.user_id == user.id, Subscription.status == "active")
        .one_or_none()
    )


def subscribe(s: "Session", user: "User", package_id: int) -> Subscription:
    """
    Start a subscription. Rejected when one is already active.

    The read-before-insert check gives the friendly message; the partial unique
    index on (user_id) WHERE status = 'active' closes the race between two
    concurrent requests. On IntegrityError the session is rolled back.
    """
    if get_active_subscription(s, user) is not None:
        raise SubscriptionExistsError()

    pkg = s.get(Package, package_id)
    if pkg is None or not pkg.is_active:
        raise PackageNotFoundError("Package not found.")

    now = datetime.utcnow()
    sub = Subscription(
        user_id=user.id,
        package_id=pkg.id,
        status="active",
        start_date=now,
        created_at=now,
        updated_at=now,
    )
    s.add(sub)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        logger.warning("Concurrent subscribe rejected by unique index (user_id=%s)", user.id)
        raise SubscriptionExistsError()

    record_event(
        s,
        actor=user,
        action="subscription.create",
        entity_type="Subscription",
        entity_id=str(sub.id),
        metadata={"package_id": pkg.id, "package_name": pkg.name},
    )
    send_notification(
        s,
        user_id=user.id,
        notification_type="billing",
        title="Subscription activated!",
        message=f"Your {pkg.name} package has been activated successfully.",
        data={"subscription_id": sub.id, "package_id": pkg.id},
    )
    return sub


def cancel_subscription(s: "Session", user: "User") -> Subscription:
    sub = get_active_subscription(s, user)
    if sub is None:
        raise NoActiveSubscriptionError("You do not have an active subscription.")
    now = datetime.utcnow()
    sub.status = "cancelled"
    sub.end_date = now
    sub.updated_at = now

    record_event(
        s,
        actor=user,
        action="subscription.cancel",
        entity_type="Subscription",
        entity_id=str(sub.id),
        metadata={"package_id": sub.package_id},
    )
    send_notification(
        s,
        user_id=user.id,
        notification_type="billing",
        title="Subscription cancelled",
        message="Your subscription has been cancelled successfully.",
        data={"subscription_id": sub.id},
    )
    return sub


# ---------- Limits & usage ----------
def package_limits(s: "Session", user: "User") -> PackageLimits:
    sub = get_active_subscription(s, user)
    if sub is None:
        return FREE_TRIAL_LIMITS
    pkg = sub.package
    return PackageLimits(
        package_name=pkg.name,
        campaign_limit=pkg.campaign_limit,
        monthly_impressions_limit=pkg.monthly_impressions_limit,
        ads_per_campaign_limit=pkg.ads_per_campaign_limit,
    )


def usage_stats(s: "Session", user: "User") -> UsageStats:
    campaigns = s.query(Campaign).filter(Campaign.user_id == user.id).all()
    return UsageStats(
        current_campaigns=len(campaigns),
        current_monthly_impressions=monthly_impressions(s, user),
        campaigns_by_status=campaigns_by_status(campaigns),
    )


def can_create_campaign(s: "Session", user: "User") -> bool:
    # All packages allow unlimited campaigns.
    return bool(user and user.is_active)


def can_create_ad(s: "Session", user: "User", campaign_id: int) -> bool:
    """Only the campaign owner may add ads; the count itself is unlimited."""
    if not user or not campaign_id:
        return False
    owned = (
        s.query(Campaign.id)
        .filter(Campaign.id == campaign_id, Campaign.user_id == user.id)
        .first()
    )
    return owned is not None


def usage_percentage(current: int, limit: int | None) -> int:
    return 0


def is_near_limit(current: int, limit: int | None, threshold: int = 80) -> bool:
    return False


def is_at_limit(current: int, limit: int | None) -> bool:
    return False
