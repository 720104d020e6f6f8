from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.adsmanager.db import db_session
from app.adsmanager.models import User
from app.adsmanager.modules.ads.models import Ad
from app.adsmanager.modules.ads.service import (
    AD_TYPES,
    CALLS_TO_ACTION,
    create_ad,
    delete_ad,
    get_ad_for_user,
    toggle_ad_status,
    update_ad,
    validate_ad_payload,
)
from app.adsmanager.modules.billing.service import can_create_ad
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.campaigns.service import TARGET_AUDIENCES, get_campaign_for_user
from app.adsmanager.rbac import login_required
from app.adsmanager.storage import StorageError, storage_from_config
from app.adsmanager.uploads import UploadError, bucket_for_ad_type, max_bytes_for_bucket, remove_media, upload_media

bp = Blueprint("ads", __name__)


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


def _owned_ad_or_404(campaign_id: int, ad_id: int) -> Ad:
    ad = get_ad_for_user(db_session(), campaign_id, ad_id, _current_user())
    if not ad:
        abort(404)
    return ad


def _ad_payload(ad_type: str) -> dict:
    return {
        "name": request.form.get("name"),
        "ad_type": ad_type,
        "headline": request.form.get("headline"),
        "description": request.form.get("description"),
        "link_url": request.form.get("link_url"),
        "image_url": request.form.get("image_url") if ad_type == "image" else None,
        "video_url": request.form.get("video_url") if ad_type == "video" else None,
        "budget": request.form.get("budget"),
        "call_to_action": request.form.get("call_to_action"),
        "target_audience": request.form.get("target_audience"),
        "duration_days": request.form.get("duration_days"),
        "tags": request.form.get("tags"),
    }


def _apply_uploaded_media(payload: dict, user: User) -> str | None:
    """
    Store an uploaded creative (if any) and point the payload's media field at it.
    Returns the new URL, or None when no file was sent. Raises UploadError/StorageError.
    """
    f = request.files.get("media_file")
    if f is None or not f.filename:
        return None
    bucket = bucket_for_ad_type(payload["ad_type"])
    url = upload_media(
        storage_from_config(current_app.config),
        user_id=user.id,
        bucket=bucket,
        filename=f.filename,
        data=f.read(),
        content_type=f.mimetype,
        max_bytes=max_bytes_for_bucket(current_app.config, bucket),
    )
    payload["video_url" if payload["ad_type"] == "video" else "image_url"] = url
    return url


def _discard_upload(payload: dict, url: str | None, user: User) -> None:
    if url:
        remove_media(
            storage_from_config(current_app.config),
            bucket=bucket_for_ad_type(payload["ad_type"]),
            url=url,
            user_id=user.id,
        )


def _form_context(campaign: Campaign) -> dict:
    return {
        "campaign": campaign,
        "ad_types": AD_TYPES,
        "calls_to_action": CALLS_TO_ACTION,
        "audiences": TARGET_AUDIENCES,
        "max_image_mb": current_app.config["MAX_IMAGE_UPLOAD_BYTES"] // (1024 * 1024),
        "max_video_mb": current_app.config["MAX_VIDEO_UPLOAD_BYTES"] // (1024 * 1024),
    }


# ---------- New ----------
@bp.get("/campaigns/<int:campaign_id>/ads/new")
@login_required
def ad_new_get(campaign_id: int):
    campaign = _owned_campaign_or_404(campaign_id)
    return render_template("ads/new.html", **_form_context(campaign))


@bp.post("/campaigns/<int:campaign_id>/ads/new")
@login_required
def ad_new_post(campaign_id: int):
    s = db_session()
    u = _current_user()
    campaign = _owned_campaign_or_404(campaign_id)
    if not can_create_ad(s, u, campaign.id):
        abort(403)

    ad_type = (request.form.get("ad_type") or "").strip()
    payload = _ad_payload(ad_type)

    uploaded_url = None
    if ad_type in AD_TYPES:
        try:
            uploaded_url = _apply_uploaded_media(payload, u)
        except (UploadError, StorageError) as e:
            flash(str(e), "danger")
            return redirect(url_for("ads.ad_new_get", campaign_id=campaign.id))

    errors = validate_ad_payload(payload)
    if errors:
        _discard_upload(payload, uploaded_url, u)
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("ads.ad_new_get", campaign_id=campaign.id))

    ad = create_ad(s, campaign, payload, u)
    s.commit()
    flash("Ad created.", "success")
    return redirect(url_for("ads.ad_detail", campaign_id=campaign.id, ad_id=ad.id))


# ---------- Detail ----------
@bp.get("/campaigns/<int:campaign_id>/ads/<int:ad_id>")
@login_required
def ad_detail(campaign_id: int, ad_id: int):
    ad = _owned_ad_or_404(campaign_id, ad_id)
    return render_template(
        "ads/detail.html",
        ad=ad,
        campaign=ad.campaign,
        calls_to_action=dict(CALLS_TO_ACTION),
        audiences=dict(TARGET_AUDIENCES),
    )


# ---------- Edit ----------
@bp.get("/campaigns/<int:campaign_id>/ads/<int:ad_id>/edit")
@login_required
def ad_edit_get(campaign_id: int, ad_id: int):
    ad = _owned_ad_or_404(campaign_id, ad_id)
    return render_template("ads/edit.html", ad=ad, **_form_context(ad.campaign))


@bp.post("/campaigns/<int:campaign_id>/ads/<int:ad_id>/edit")
@login_required
def ad_edit_post(campaign_id: int, ad_id: int):
    s = db_session()
    u = _current_user()
    ad = _owned_ad_or_404(campaign_id, ad_id)

    # ad_type is fixed at creation.
    payload = _ad_payload(ad.ad_type)
    try:
        uploaded_url = _apply_uploaded_media(payload, u)
    except (UploadError, StorageError) as e:
        flash(str(e), "danger")
        return redirect(url_for("ads.ad_edit_get", campaign_id=campaign_id, ad_id=ad.id))

    errors = validate_ad_payload(payload)
    if errors:
        _discard_upload(payload, uploaded_url, u)
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("ads.ad_edit_get", campaign_id=campaign_id, ad_id=ad.id))

    old_media = ad.media_url
    update_ad(s, ad, payload, u)
    s.commit()
    if old_media and old_media != ad.media_url:
        _discard_upload(payload, old_media, u)

    flash("Ad updated.", "success")
    return redirect(url_for("ads.ad_detail", campaign_id=campaign_id, ad_id=ad.id))


# ---------- Status / Delete ----------
@bp.post("/campaigns/<int:campaign_id>/ads/<int:ad_id>/toggle")
@login_required
def ad_toggle(campaign_id: int, ad_id: int):
    s = db_session()
    ad = _owned_ad_or_404(campaign_id, ad_id)
    new_status = toggle_ad_status(s, ad, _current_user())
    s.commit()
    flash(f"Ad is now {new_status}.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign_id))


@bp.post("/campaigns/<int:campaign_id>/ads/<int:ad_id>/delete")
@login_required
def ad_delete(campaign_id: int, ad_id: int):
    s = db_session()
    ad = _owned_ad_or_404(campaign_id, ad_id)
    delete_ad(s, ad, _current_user(), storage=storage_from_config(current_app.config))
    s.commit()
    flash("Ad deleted.", "success")
    return redirect(url_for("campaigns.campaign_detail", campaign_id=campaign_id))
