from __future__ import annotations

from typing import TYPE_CHECKING

from app.adsmanager.modules.analytics import service as analytics_service
from app.adsmanager.modules.billing import service as billing_service
from app.adsmanager.modules.campaigns.service import campaign_totals, list_campaigns
from app.adsmanager.modules.notifications.service import list_notifications
from app.adsmanager.modules.profiles.service import get_or_create_profile

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User

RECENT_CAMPAIGNS = 5
RECENT_NOTIFICATIONS = 5


def build_dashboard(s: "Session", user: "User") -> dict:
    """Everything the overview page renders, gathered in one pass."""
    campaigns = list_campaigns(s, user)
    analytics_rows = analytics_service.list_analytics(s, user)
    analytics_totals = analytics_service.total_analytics(analytics_rows)
    limits = billing_service.package_limits(s, user)
    usage = billing_service.usage_stats(s, user)

    return {
        "profile": get_or_create_profile(s, user),
        "subscription": billing_service.get_active_subscription(s, user),
        "totals": campaign_totals(campaigns),
        "recent_campaigns": campaigns[:RECENT_CAMPAIGNS],
        "analytics_totals": analytics_totals,
        "analytics_summary": analytics_service.summary_metrics(analytics_totals),
        "limits": limits,
        "usage": usage,
        "usage_campaigns_pct": billing_service.usage_percentage(usage.current_campaigns, limits.campaign_limit),
        "usage_impressions_pct": billing_service.usage_percentage(
            usage.current_monthly_impressions, limits.monthly_impressions_limit
        ),
        "near_limit": billing_service.is_near_limit(usage.current_campaigns, limits.campaign_limit),
        "notifications": list_notifications(s, user, unread_only=True, limit=RECENT_NOTIFICATIONS),
    }
