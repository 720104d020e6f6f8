import pytest
from sqlalchemy.exc import IntegrityError

from app.adsmanager.db import session_scope
from app.adsmanager.models import AuditEvent
from app.adsmanager.modules.billing import service as billing
from app.adsmanager.modules.billing.models import Package, Subscription
from app.adsmanager.modules.notifications.models import Notification

from conftest import flashes, form, get_user, login


def _package(app, name: str = "Starter", price_cents: int = 2900, is_active: bool = True) -> int:
    with session_scope(app) as s:
        pkg = Package(name=name, price_cents=price_cents, features=["Image ads"], is_active=is_active)
        s.add(pkg)
        s.flush()
        return pkg.id


def test_packages_page_lists_active_packages_only(client):
    _package(client.application, "Starter")
    _package(client.application, "Retired", is_active=False)
    login(client)
    r = client.get("/packages")
    assert r.status_code == 200
    assert b"Starter" in r.data
    assert b"Retired" not in r.data


def test_subscribe_then_second_subscribe_is_refused(client):
    app = client.application
    starter = _package(app, "Starter")
    business = _package(app, "Business", 14900)
    login(client)

    r = client.post(f"/packages/{starter}/subscribe", data=form(), follow_redirects=False)
    assert r.status_code == 302

    r = client.post(f"/packages/{business}/subscribe", data=form(), follow_redirects=False)
    assert r.status_code == 302
    assert billing.SUBSCRIPTION_EXISTS_MESSAGE in flashes(client)

    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        subs = s.query(Subscription).filter(Subscription.user_id == owner.id).all()
        assert len(subs) == 1
        assert subs[0].package_id == starter
        assert subs[0].status == "active"
        titles = [n.title for n in s.query(Notification).filter(Notification.user_id == owner.id).all()]
        assert "Subscription activated!" in titles


def test_cancel_allows_new_subscription(client):
    app = client.application
    starter = _package(app, "Starter")
    business = _package(app, "Business", 14900)
    login(client)

    client.post(f"/packages/{starter}/subscribe", data=form(), follow_redirects=False)
    client.post("/subscription/cancel", data=form(), follow_redirects=False)
    client.post(f"/packages/{business}/subscribe", data=form(), follow_redirects=False)

    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        subs = s.query(Subscription).filter(Subscription.user_id == owner.id).order_by(Subscription.id).all()
        assert [(x.package_id, x.status) for x in subs] == [(starter, "cancelled"), (business, "active")]
        assert subs[0].end_date is not None


def test_partial_unique_index_blocks_second_active_row(app):
    starter = _package(app)
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        s.add(Subscription(user_id=owner.id, package_id=starter, status="active"))

    with pytest.raises(IntegrityError):
        with session_scope(app) as s:
            owner = get_user(s, "owner@example.com")
            s.add(Subscription(user_id=owner.id, package_id=starter, status="active"))


def test_subscribe_race_maps_index_violation_to_exists_error(app, monkeypatch):
    starter = _package(app)
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        s.add(Subscription(user_id=owner.id, package_id=starter, status="active"))

    # Both requests passed the pre-check; the index decides.
    monkeypatch.setattr(billing, "get_active_subscription", lambda s, user: None)
    with pytest.raises(billing.SubscriptionExistsError):
        with session_scope(app) as s:
            billing.subscribe(s, get_user(s, "owner@example.com"), starter)

    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        assert s.query(Subscription).filter(Subscription.user_id == owner.id).count() == 1


def test_subscribe_to_inactive_package_is_refused(app):
    retired = _package(app, "Retired", is_active=False)
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        with pytest.raises(billing.PackageNotFoundError):
            billing.subscribe(s, owner, retired)


def test_limits_fall_back_to_free_trial_and_never_block(app):
    starter = _package(app)
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        assert billing.package_limits(s, owner) == billing.FREE_TRIAL_LIMITS
        billing.subscribe(s, owner, starter)
        limits = billing.package_limits(s, owner)
        assert limits.package_name == "Starter"
        assert limits.campaign_limit is None
        assert billing.can_create_campaign(s, owner) is True
        assert billing.is_at_limit(10_000, 1) is False
        assert billing.usage_percentage(50, 100) == 0


def test_manage_packages_requires_permission(client):
    login(client)
    r = client.get("/packages/manage")
    assert r.status_code == 403


def test_admin_creates_edits_and_deletes_package(client):
    app = client.application
    login(client, "admin@example.com")

    r = client.post(
        "/packages/manage/new",
        data=form(name="Video Pulse", price="79.00", features="Video ads\n\nDetailed analytics\n"),
        follow_redirects=False,
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        pkg = s.query(Package).filter(Package.name == "Video Pulse").one()
        assert pkg.price_cents == 7900
        assert pkg.features == ["Video ads", "Detailed analytics"]
        pkg_id = pkg.id

    r = client.post(f"/packages/{pkg_id}/edit", data=form(name="Video Pulse", price=""), follow_redirects=False)
    assert "Please fill in package name and price." in flashes(client)

    client.post(f"/packages/{pkg_id}/toggle", data=form(), follow_redirects=False)
    with session_scope(app) as s:
        assert s.get(Package, pkg_id).is_active is False

    client.post(f"/packages/{pkg_id}/delete", data=form(), follow_redirects=False)
    with session_scope(app) as s:
        assert s.get(Package, pkg_id) is None
        actions = {e.action for e in s.query(AuditEvent).all()}
        assert {"package.create", "package.delete"} <= actions


def test_package_with_subscriptions_cannot_be_deleted(client):
    app = client.application
    starter = _package(app)
    with session_scope(app) as s:
        billing.subscribe(s, get_user(s, "owner@example.com"), starter)

    login(client, "admin@example.com")
    client.post(f"/packages/{starter}/delete", data=form(), follow_redirects=False)
    assert "Package has subscriptions; deactivate it instead." in flashes(client)
    with session_scope(app) as s:
        assert s.get(Package, starter) is not None
