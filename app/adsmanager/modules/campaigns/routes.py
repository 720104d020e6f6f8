from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.adsmanager.db import db_session
from app.adsmanager.models import User
from app.adsmanager.modules.analytics import service as analytics_service
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.campaigns.service import (
    OBJECTIVES,
    TARGET_AUDIENCES,
    VALID_STATUSES,
    can_activate,
    create_campaign,
    delete_campaign,
    get_campaign_for_user,
    list_ads_for_campaign,
    list_campaigns,
    set_campaign_status,
    toggle_campaign_status,
    update_campaign,
    validate_campaign_payload,
)
from app.adsmanager.rbac import login_required
from app.adsmanager.storage import storage_from_config

bp = Blueprint("campaigns", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _owned_campaign_or_404(campaign_id: int) -> Campaign:
    campaign = get_campaign_for_user(db_session(), campaign_id, _current_user())
    if not campaign:
        abort(404)
    return campaign


def _campaign_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "description": request.form.get("description"),
        "budget": request.form.get("budget"),
        "target_audience": request.form.get("target_audience"),
        "objectives": request.form.getlist("objectives"),
    }


def _flash_all(errors: list[str]) -> None:
    for e in errors:
        flash(e, "danger")


# ---------- List ----------
@bp.get("/campaigns")
@login_required
def campaigns_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    if status_filter not in VALID_STATUSES:
        status_filter = ""
    campaigns = list_campaigns(s, _current_user(), status=status_filter or None)
    return render_template(
        "campaigns/list.html",
        campaigns=campaigns,
        status_filter=status_filter,
        statuses=VALID_STATUSES,
    )


# ---------- New ----------
@bp.get("/campaigns/new")
@login_required
def campaigns_new_get():
    return render_template(
        "campaigns/new.html",
        audiences=TARGET_AUDIENCES,
        objectives=OBJECTIVES,
    )


@bp.post("/campaigns/new")
@login_required
def campaigns_new_post():
    s = db_session()
    u = _current_user()
    payload = _campaign_payload()

    errors = validate_campaign_payload(payload)
    if errors:
        _flash_all(errors)
        return redirect(url_for("campaigns.campaigns_new_get"))

    campaign = create_campaign(s, payload, u)

    if request.form.get("activate"):
        ok, guard_errors = set_campaign_status(s, campaign, "active", u)
        if not ok:
            s.commit()
            for e in guard_errors:
                flash(e, "warning")
            flash("Campaign saved as draft. Add an ad, then activate it.", "info")
            return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign.id))

    s.commit()
    flash("Campaign created.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign.id))


# ---------- Detail ----------
@bp.get("/campaigns/<int:campaign_id>")
@login_required
def campaign_detail(campaign_id: int):
    s = db_session()
    u = _current_user()
    campaign = _owned_campaign_or_404(campaign_id)
    ads = list_ads_for_campaign(s, campaign)
    analytics_rows = analytics_service.list_analytics(s, u, campaign_id=campaign.id)
    totals = analytics_service.total_analytics(analytics_rows)
    ready, guard_errors = can_activate(campaign, ads)

    return render_template(
        "campaigns/detail.html",
        campaign=campaign,
        ads=ads,
        analytics_rows=analytics_rows,
        analytics_totals=totals,
        summary=analytics_service.summary_metrics(totals),
        can_activate=ready,
        activation_errors=guard_errors,
        audiences=dict(TARGET_AUDIENCES),
        objectives=dict(OBJECTIVES),
    )


# ---------- Edit ----------
@bp.get("/campaigns/<int:campaign_id>/edit")
@login_required
def campaign_edit_get(campaign_id: int):
    campaign = _owned_campaign_or_404(campaign_id)
    return render_template(
        "campaigns/edit.html",
        campaign=campaign,
        audiences=TARGET_AUDIENCES,
        objectives=OBJECTIVES,
    )


@bp.post("/campaigns/<int:campaign_id>/edit")
@login_required
def campaign_edit_post(campaign_id: int):
    s = db_session()
    u = _current_user()
    campaign = _owned_campaign_or_404(campaign_id)
    payload = _campaign_payload()

    errors = validate_campaign_payload(payload)
    if errors:
        _flash_all(errors)
        return redirect(url_for("campaigns.campaign_edit_get", campaign_id=campaign.id))

    update_campaign(s, campaign, payload, u)
    s.commit()
    flash("Campaign updated.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign.id))


# ---------- Status ----------
@bp.post("/campaigns/<int:campaign_id>/toggle")
@login_required
def campaign_toggle(campaign_id: int):
    s = db_session()
    campaign = _owned_campaign_or_404(campaign_id)
    ok, errors = toggle_campaign_status(s, campaign, _current_user())
    if not ok:
        s.rollback()
        _flash_all(errors)
    else:
        s.commit()
        flash(f"Campaign is now {campaign.status}.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign_id))


@bp.post("/campaigns/<int:campaign_id>/status")
@login_required
def campaign_status(campaign_id: int):
    s = db_session()
    campaign = _owned_campaign_or_404(campaign_id)
    new_status = (request.form.get("status") or "").strip()
    ok, errors = set_campaign_status(s, campaign, new_status, _current_user())
    if not ok:
        s.rollback()
        _flash_all(errors)
    else:
        s.commit()
        flash(f"Campaign is now {campaign.status}.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign_id))


# ---------- Delete ----------
@bp.post("/campaigns/<int:campaign_id>/delete")
@login_required
def campaign_delete(campaign_id: int):
    s = db_session()
    campaign = _owned_campaign_or_404(campaign_id)
    name = campaign.name
    try:
        counts = delete_campaign(s, campaign, _current_user(), storage=storage_from_config(current_app.config))
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception(
            "Campaign delete failed (campaign_id=%s request_id=%s)", campaign_id, getattr(g, "request_id", None)
        )
        flash("Could not delete the campaign. Nothing was removed; please try again.", "danger")
        return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign_id))

    flash(f"Deleted campaign '{name}' ({counts['ads']} ads, {counts['analytics']} analytics days).", "success")
    return redirect(url_for("dashboard.index"))
