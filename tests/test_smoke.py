from app.adsmanager.db import session_scope
from app.adsmanager.models import AuditEvent, User
from app.adsmanager.modules.notifications.models import NotificationPreference
from app.adsmanager.modules.profiles.models import Profile

from conftest import flashes, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_landing_page_lists_packages(client):
    r = client.get("/")
    assert r.status_code == 200


def test_dashboard_requires_login(client):
    r = client.get("/dashboard")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_login_and_dashboard_access(client):
    login(client)
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"performance-chart" in r.data


def test_login_rejects_bad_password(client):
    r = client.post("/auth/login", data={"email": "owner@example.com", "password": "nope"}, follow_redirects=False)
    assert r.status_code == 302
    assert "Invalid credentials." in flashes(client)

    with session_scope(client.application) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
        assert "auth.login_failed" in actions


def test_signup_rejects_password_mismatch_and_short_password(client):
    r = client.post(
        "/auth/signup",
        data={"email": "new@example.com", "password": "abc", "confirm_password": "abd"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    msgs = flashes(client)
    assert "Password mismatch: the passwords do not match." in msgs
    assert "Password too short: use at least 6 characters." in msgs

    with session_scope(client.application) as s:
        assert s.query(User).filter(User.email == "new@example.com").one_or_none() is None


def test_signup_with_existing_email_points_to_login(client):
    r = client.post(
        "/auth/signup",
        data={"email": "Owner@Example.com", "password": "secret1", "confirm_password": "secret1"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert any(m.startswith("Account exists") for m in flashes(client))


def test_signup_creates_account_profile_and_preferences(client):
    r = client.post(
        "/auth/signup",
        data={
            "email": "shop@example.com",
            "password": "secret1",
            "confirm_password": "secret1",
            "business_name": "Yangon Tea House",
        },
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    with session_scope(client.application) as s:
        u = s.query(User).filter(User.email == "shop@example.com").one()
        profile = s.query(Profile).filter(Profile.user_id == u.id).one()
        assert profile.business_name == "Yangon Tea House"
        assert profile.contact_email == "shop@example.com"
        assert s.query(NotificationPreference).filter(NotificationPreference.user_id == u.id).one()

    # Signed in straight away
    r = client.get("/dashboard")
    assert r.status_code == 200


def test_post_without_csrf_token_is_rejected(client):
    login(client)
    r = client.post("/campaigns/new", data={"name": "X", "budget": "10"})
    assert r.status_code == 400
