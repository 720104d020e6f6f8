from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.adsmanager.db import db_session
from app.adsmanager.models import User
from app.adsmanager.modules.billing.models import Package
from app.adsmanager.modules.billing.service import (
    BillingError,
    NoActiveSubscriptionError,
    PackageNotFoundError,
    SubscriptionExistsError,
    cancel_subscription,
    create_package,
    delete_package,
    get_active_subscription,
    list_active_packages,
    list_all_packages,
    list_subscriptions,
    package_limits,
    subscribe,
    toggle_package_active,
    update_package,
    usage_stats,
    validate_package_payload,
)
from app.adsmanager.rbac import login_required, require_permission

bp = Blueprint("billing", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _package_payload() -> dict:
    return {
        "name": request.form.get("name"),
        "description": request.form.get("description"),
        "price": request.form.get("price"),
        "features": request.form.get("features"),
    }


# ---------- Catalogue / subscriptions ----------
@bp.get("/packages")
@login_required
def packages_list():
    s = db_session()
    u = _current_user()
    return render_template(
        "packages/list.html",
        packages=list_active_packages(s),
        subscription=get_active_subscription(s, u),
        history=list_subscriptions(s, u),
        limits=package_limits(s, u),
        usage=usage_stats(s, u),
    )


@bp.post("/packages/<int:package_id>/subscribe")
@login_required
def package_subscribe(package_id: int):
    s = db_session()
    try:
        sub = subscribe(s, _current_user(), package_id)
    except (SubscriptionExistsError, PackageNotFoundError) as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("billing.packages_list"))
    s.commit()
    flash(f"Subscribed to {sub.package.name}.", "success")
    return redirect(url_for("billing.packages_list"))


@bp.post("/subscription/cancel")
@login_required
def subscription_cancel():
    s = db_session()
    try:
        cancel_subscription(s, _current_user())
    except NoActiveSubscriptionError as e:
        flash(str(e), "danger")
        return redirect(url_for("billing.packages_list"))
    s.commit()
    flash("Subscription cancelled.", "success")
    return redirect(url_for("billing.packages_list"))


# ---------- Catalogue administration ----------
@bp.get("/packages/manage")
@require_permission("packages.manage")
def packages_manage():
    s = db_session()
    return render_template("packages/manage.html", packages=list_all_packages(s))


@bp.post("/packages/manage/new")
@require_permission("packages.manage")
def package_new_post():
    s = db_session()
    payload = _package_payload()
    errors = validate_package_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("billing.packages_manage"))

    pkg = create_package(s, payload, _current_user())
    s.commit()
    flash(f"Package '{pkg.name}' created.", "success")
    return redirect(url_for("billing.packages_manage"))


@bp.get("/packages/<int:package_id>/edit")
@require_permission("packages.manage")
def package_edit_get(package_id: int):
    pkg = db_session().get(Package, package_id)
    if not pkg:
        abort(404)
    return render_template("packages/edit.html", package=pkg)


@bp.post("/packages/<int:package_id>/edit")
@require_permission("packages.manage")
def package_edit_post(package_id: int):
    s = db_session()
    pkg = s.get(Package, package_id)
    if not pkg:
        abort(404)
    payload = _package_payload()
    errors = validate_package_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("billing.package_edit_get", package_id=pkg.id))

    update_package(s, pkg, payload, _current_user())
    s.commit()
    flash("Package updated.", "success")
    return redirect(url_for("billing.packages_manage"))


@bp.post("/packages/<int:package_id>/toggle")
@require_permission("packages.manage")
def package_toggle(package_id: int):
    s = db_session()
    pkg = s.get(Package, package_id)
    if not pkg:
        abort(404)
    active = toggle_package_active(s, pkg, _current_user())
    s.commit()
    flash(f"Package '{pkg.name}' {'activated' if active else 'deactivated'}.", "success")
    return redirect(url_for("billing.packages_manage"))


@bp.post("/packages/<int:package_id>/delete")
@require_permission("packages.manage")
def package_delete(package_id: int):
    s = db_session()
    pkg = s.get(Package, package_id)
    if not pkg:
        abort(404)
    try:
        delete_package(s, pkg, _current_user())
    except BillingError as e:
        flash(str(e), "danger")
        return redirect(url_for("billing.packages_manage"))
    s.commit()
    flash("Package deleted.", "success")
    return redirect(url_for("billing.packages_manage"))
