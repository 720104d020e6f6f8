from flask import Blueprint, current_app, g, render_template

from app.adsmanager.db import db_session
from app.adsmanager.modules.dashboard.service import build_dashboard
from app.adsmanager.rbac import login_required

bp = Blueprint("dashboard", __name__)


@bp.get("/dashboard")
@login_required
def index():
    s = db_session()
    context = build_dashboard(s, g.current_user)
    # Profile may have been created lazily.
    s.commit()
    return render_template(
        "dashboard.html",
        refresh_seconds=current_app.config.get("ANALYTICS_REFRESH_SECONDS", 30),
        **context,
    )
