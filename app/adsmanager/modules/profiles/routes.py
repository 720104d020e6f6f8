from __future__ import annotations

import io

from flask import Blueprint, flash, g, redirect, render_template, request, send_file, url_for

from app.adsmanager.db import db_session
from app.adsmanager.models import User
from app.adsmanager.modules.billing.service import get_active_subscription
from app.adsmanager.modules.notifications.service import (
    DEFAULT_PREFERENCES,
    effective_preferences,
    get_preferences,
    update_preferences,
)
from app.adsmanager.modules.profiles.service import (
    CURRENCIES,
    DATA_RETENTION,
    DEFAULT_SETTINGS,
    EXPORT_FORMATS,
    LANGUAGES,
    THEMES,
    TIMEZONES,
    effective_settings,
    export_campaigns_csv,
    export_filename,
    get_or_create_profile,
    update_profile,
    update_settings,
    validate_profile_payload,
)
from app.adsmanager.rbac import login_required

bp = Blueprint("profiles", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Profile ----------
@bp.get("/profile")
@login_required
def profile_get():
    s = db_session()
    u = _current_user()
    profile = get_or_create_profile(s, u)
    s.commit()
    return render_template("profile.html", profile=profile, subscription=get_active_subscription(s, u))


@bp.post("/profile")
@login_required
def profile_post():
    s = db_session()
    u = _current_user()
    payload = {
        "business_name": request.form.get("business_name"),
        "contact_email": request.form.get("contact_email"),
        "phone": request.form.get("phone"),
    }
    errors = validate_profile_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("profiles.profile_get"))

    update_profile(s, get_or_create_profile(s, u), payload, u)
    s.commit()
    flash("Profile updated.", "success")
    return redirect(url_for("profiles.profile_get"))


# ---------- Settings ----------
@bp.get("/settings")
@login_required
def settings_get():
    s = db_session()
    u = _current_user()
    profile = get_or_create_profile(s, u)
    s.commit()
    return render_template(
        "settings.html",
        settings=effective_settings(profile),
        preferences=effective_preferences(get_preferences(s, u.id)),
        choices={
            "language": LANGUAGES,
            "timezone": TIMEZONES,
            "currency": CURRENCIES,
            "theme": THEMES,
            "data_retention": DATA_RETENTION,
            "export_format": EXPORT_FORMATS,
        },
        toggles=[k for k, v in DEFAULT_SETTINGS.items() if isinstance(v, bool)],
    )


@bp.post("/settings/general")
@login_required
def settings_general_post():
    s = db_session()
    u = _current_user()
    values: dict = {}
    for key, default in DEFAULT_SETTINGS.items():
        if isinstance(default, bool):
            values[key] = request.form.get(key) == "on"
        elif key in request.form:
            values[key] = request.form.get(key)
    update_settings(s, get_or_create_profile(s, u), values, u)
    s.commit()
    flash("Settings saved.", "success")
    return redirect(url_for("profiles.settings_get"))


@bp.post("/settings/notifications")
@login_required
def settings_notifications_post():
    s = db_session()
    u = _current_user()
    update_preferences(s, u, {key: request.form.get(key) == "on" for key in DEFAULT_PREFERENCES})
    s.commit()
    flash("Notification preferences saved.", "success")
    return redirect(url_for("profiles.settings_get"))


@bp.get("/settings/export")
@login_required
def settings_export():
    s = db_session()
    data, _count = export_campaigns_csv(s, _current_user())
    s.commit()
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=export_filename(),
        max_age=0,
    )
