from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.adsmanager.db import db_session
from app.adsmanager.modules.notifications.service import list_notifications, mark_all_read, mark_read
from app.adsmanager.rbac import login_required

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
@login_required
def notifications_list():
    s = db_session()
    unread_only = request.args.get("unread") == "1"
    return render_template(
        "notifications/list.html",
        notifications=list_notifications(s, g.current_user, unread_only=unread_only),
        unread_only=unread_only,
    )


@bp.post("/notifications/<int:notification_id>/read")
@login_required
def notification_read(notification_id: int):
    s = db_session()
    if not mark_read(s, g.current_user, notification_id):
        abort(404)
    s.commit()
    return redirect(url_for("notifications.notifications_list"))


@bp.post("/notifications/read-all")
@login_required
def notifications_read_all():
    s = db_session()
    count = mark_all_read(s, g.current_user)
    s.commit()
    flash(f"Marked {count} notification(s) as read.", "success")
    return redirect(url_for("notifications.notifications_list"))
