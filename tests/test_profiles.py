import csv
import io
from datetime import date, datetime

from app.adsmanager.db import session_scope
from app.adsmanager.models import AuditEvent
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.profiles import service as profiles
from app.adsmanager.modules.profiles.models import Profile

from conftest import flashes, form, get_user, login


def test_export_filename():
    assert profiles.export_filename(date(2026, 10, 19)) == "viber-ads-data-2026-10-19.csv"


def test_validate_profile_payload():
    assert profiles.validate_profile_payload({"contact_email": "shop@example.com"}) == []
    assert profiles.validate_profile_payload({"contact_email": "not-an-email"}) == [
        "Contact email is not a valid email address."
    ]


def test_profile_is_created_on_first_visit_and_updated(client):
    login(client)
    r = client.get("/profile")
    assert r.status_code == 200

    r = client.post(
        "/profile",
        data=form(business_name="Mandalay Motors", contact_email="sales@mandalay.example", phone="+95 9 123"),
        follow_redirects=False,
    )
    assert r.status_code == 302

    with session_scope(client.application) as s:
        owner = get_user(s, "owner@example.com")
        p = s.query(Profile).filter(Profile.user_id == owner.id).one()
        assert p.business_name == "Mandalay Motors"
        assert p.contact_email == "sales@mandalay.example"


def test_profile_rejects_bad_email(client):
    login(client)
    client.post("/profile", data=form(contact_email="nope"), follow_redirects=False)
    assert "Contact email is not a valid email address." in flashes(client)


def test_general_settings_keep_defaults_and_ignore_unknown_choices(client):
    login(client)
    r = client.get("/settings")
    assert r.status_code == 200

    client.post(
        "/settings/general",
        data=form(language="my", currency="XYZ", theme="dark", auto_save="on"),
        follow_redirects=False,
    )
    with session_scope(client.application) as s:
        owner = get_user(s, "owner@example.com")
        settings = profiles.effective_settings(profiles.get_profile(s, owner))
        assert settings["language"] == "my"
        assert settings["theme"] == "dark"
        assert settings["currency"] == "MMK"
        assert settings["timezone"] == "Asia/Yangon"
        assert settings["auto_save"] is True
        assert settings["two_factor"] is False


def test_export_campaigns_csv(client):
    app = client.application
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        other = get_user(s, "other@example.com")
        s.add_all(
            [
                Campaign(
                    user_id=owner.id,
                    name="Water Festival",
                    budget_cents=123456,
                    status="active",
                    impressions=2000,
                    clicks=40,
                    conversions=2,
                    created_at=datetime(2026, 4, 13, 8, 0),
                ),
                Campaign(user_id=other.id, name="Not mine", budget_cents=100),
            ]
        )

    login(client)
    r = client.get("/settings/export")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "viber-ads-data-" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0] == profiles.CSV_HEADER
    assert rows[1:] == [["Water Festival", "active", "1234.56", "2000", "40", "2", "2026-04-13"]]

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "campaign.export").count() == 1
