from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, g, request

from app.adsmanager.db import db_session
from app.adsmanager.modules.analytics.service import (
    analytics_for_date_range,
    daily_series,
    list_analytics,
    refresh_active_campaigns,
    summary_metrics,
    total_analytics,
)
from app.adsmanager.rbac import login_required

bp = Blueprint("analytics", __name__)


@bp.post("/analytics/refresh")
@login_required
def refresh():
    """Dashboard poll: grow today's numbers for every active campaign."""
    s = db_session()
    user = g.current_user
    try:
        count = refresh_active_campaigns(s, user)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception(
            "Analytics refresh failed (user_id=%s request_id=%s)", user.id, getattr(g, "request_id", None)
        )
        return {"error": "Analytics refresh failed"}, 500
    return {"success": True, "updated": count}


@bp.get("/analytics/series.json")
@login_required
def series():
    s = db_session()
    campaign_id = request.args.get("campaign_id", type=int)
    rows = list_analytics(s, g.current_user, campaign_id=campaign_id)
    start = request.args.get("start", type=date.fromisoformat)
    end = request.args.get("end", type=date.fromisoformat)
    if start or end:
        rows = analytics_for_date_range(rows, start or date.min, end or date.max)
    totals = total_analytics(rows)
    return {
        "series": daily_series(rows),
        "totals": totals,
        "summary": summary_metrics(totals),
    }
