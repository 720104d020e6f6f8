import pytest

from app.adsmanager.db import session_scope
from app.adsmanager.modules.ads.models import Ad
from app.adsmanager.modules.analytics.models import CampaignAnalytics
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.campaigns.service import (
    INCOMPLETE_ADS_MESSAGE,
    MAX_AMOUNT_CENTS,
    MISSING_FIELDS_MESSAGE,
    NO_ADS_MESSAGE,
    parse_budget_cents,
    validate_campaign_payload,
)
from app.adsmanager.modules.notifications.models import Notification

from conftest import flashes, form, get_user, login


def _create_campaign(client, **fields):
    data = {"name": "Thingyan Sale", "budget": "10000.00", "target_audience": "families"}
    data.update(fields)
    r = client.post("/campaigns/new", data=form(**data), follow_redirects=False)
    assert r.status_code == 302
    with session_scope(client.application) as s:
        return s.query(Campaign).order_by(Campaign.id.desc()).first().id


def _add_ad(app, campaign_id: int, **fields) -> int:
    with session_scope(app) as s:
        c = s.get(Campaign, campaign_id)
        values = {
            "campaign_id": c.id,
            "user_id": c.user_id,
            "name": "Banner",
            "ad_type": "image",
            "headline": "Big sale",
            "description": "Everything 20% off",
            "image_url": "/media/campaign-images/1/1.png",
        }
        values.update(fields)
        ad = Ad(**values)
        s.add(ad)
        s.flush()
        return ad.id


def test_parse_budget_cents():
    assert parse_budget_cents("12.50") == 1250
    assert parse_budget_cents("1,000") == 100000
    assert parse_budget_cents("") is None
    assert parse_budget_cents(None) is None


def test_parse_budget_cents_rejects_unrepresentable_amounts():
    assert parse_budget_cents(str(MAX_AMOUNT_CENTS // 100)) == MAX_AMOUNT_CENTS
    cases = (
        ("1e30", "Budget must be a number."),
        ("1e20", "Budget is too large."),
        ("nan", "Budget must be a number."),
    )
    for raw, message in cases:
        with pytest.raises(ValueError) as exc:
            parse_budget_cents(raw)
        assert str(exc.value) == message
    assert validate_campaign_payload({"name": "Sale", "budget": "1e30"}) == ["Budget must be a number."]


def test_create_campaign_with_huge_budget_flashes_error(client):
    login(client)
    for budget in ("1e30", "5000000000000"):
        r = client.post("/campaigns/new", data=form(name="Sale", budget=budget), follow_redirects=False)
        assert r.status_code == 302
    messages = flashes(client)
    assert "Budget must be a number." in messages
    assert "Budget is too large." in messages

    with session_scope(client.application) as s:
        assert s.query(Campaign).count() == 0


def test_validate_campaign_payload_requires_name_and_budget():
    assert validate_campaign_payload({"name": "", "budget": "10"}) == [MISSING_FIELDS_MESSAGE]
    assert validate_campaign_payload({"name": "Sale", "budget": ""}) == [MISSING_FIELDS_MESSAGE]
    assert "Budget cannot be negative." in validate_campaign_payload({"name": "Sale", "budget": "-1"})
    assert validate_campaign_payload({"name": "Sale", "budget": "10"}) == []


def test_create_campaign_missing_fields_writes_nothing(client):
    login(client)
    r = client.post("/campaigns/new", data=form(name="", budget="100"), follow_redirects=False)
    assert r.status_code == 302
    assert MISSING_FIELDS_MESSAGE in flashes(client)

    with session_scope(client.application) as s:
        assert s.query(Campaign).count() == 0


def test_create_campaign_starts_as_draft(client):
    login(client)
    cid = _create_campaign(client, objectives=["brand_awareness", "bogus"])

    with session_scope(client.application) as s:
        c = s.get(Campaign, cid)
        assert c.status == "draft"
        assert c.budget_cents == 1000000
        assert c.objectives == ["brand_awareness"]
        assert c.user_id == get_user(s, "owner@example.com").id

    r = client.get(f"/campaigns/{cid}")
    assert r.status_code == 200


def test_activate_without_ads_is_refused(client):
    login(client)
    cid = _create_campaign(client)

    r = client.post(f"/campaigns/{cid}/toggle", data=form(), follow_redirects=False)
    assert r.status_code == 302
    assert NO_ADS_MESSAGE in flashes(client)

    with session_scope(client.application) as s:
        assert s.get(Campaign, cid).status == "draft"
        assert s.query(CampaignAnalytics).count() == 0


def test_create_and_activate_keeps_draft_when_guard_fails(client):
    login(client)
    cid = _create_campaign(client, activate="1")

    with session_scope(client.application) as s:
        assert s.get(Campaign, cid).status == "draft"
    assert NO_ADS_MESSAGE in flashes(client)


def test_activate_with_incomplete_ad_is_refused(client):
    login(client)
    cid = _create_campaign(client)
    _add_ad(client.application, cid, headline=None)

    client.post(f"/campaigns/{cid}/status", data=form(status="active"), follow_redirects=False)
    assert INCOMPLETE_ADS_MESSAGE in flashes(client)

    with session_scope(client.application) as s:
        assert s.get(Campaign, cid).status == "draft"


def test_activation_seeds_analytics_and_notifies(client):
    login(client)
    cid = _create_campaign(client)
    _add_ad(client.application, cid)

    r = client.post(f"/campaigns/{cid}/toggle", data=form(), follow_redirects=False)
    assert r.status_code == 302

    with session_scope(client.application) as s:
        c = s.get(Campaign, cid)
        assert c.status == "active"
        row = s.query(CampaignAnalytics).filter(CampaignAnalytics.campaign_id == cid).one()
        # 10000.00 budget -> 20% impressions
        assert row.impressions == 2000
        assert row.spend_cents == 100000
        assert c.impressions == row.impressions
        titles = [n.title for n in s.query(Notification).filter(Notification.user_id == c.user_id).all()]
        assert "Campaign activated" in titles

    # Pause
    client.post(f"/campaigns/{cid}/toggle", data=form(), follow_redirects=False)
    with session_scope(client.application) as s:
        assert s.get(Campaign, cid).status == "paused"


def test_delete_campaign_cascades_ads_and_analytics(client):
    login(client)
    cid = _create_campaign(client)
    _add_ad(client.application, cid)
    _add_ad(client.application, cid, name="Second")
    client.post(f"/campaigns/{cid}/toggle", data=form(), follow_redirects=False)

    r = client.post(f"/campaigns/{cid}/delete", data=form(), follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    with session_scope(client.application) as s:
        assert s.get(Campaign, cid) is None
        assert s.query(Ad).filter(Ad.campaign_id == cid).count() == 0
        assert s.query(CampaignAnalytics).filter(CampaignAnalytics.campaign_id == cid).count() == 0


def test_other_users_campaign_is_not_found(client):
    login(client)
    cid = _create_campaign(client)

    other = client.application.test_client()
    login(other, "other@example.com")
    assert other.get(f"/campaigns/{cid}").status_code == 404
    r = other.post(f"/campaigns/{cid}/delete", data=form(), follow_redirects=False)
    assert r.status_code == 404

    with session_scope(client.application) as s:
        assert s.get(Campaign, cid) is not None


def test_campaign_list_filters_by_status(client):
    login(client)
    _create_campaign(client, name="Draft one")
    r = client.get("/campaigns?status=active")
    assert r.status_code == 200
    assert b"Draft one" not in r.data
    r = client.get("/campaigns?status=draft")
    assert b"Draft one" in r.data
