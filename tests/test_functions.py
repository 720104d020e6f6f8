from app.adsmanager.db import session_scope
from app.adsmanager.modules.analytics.models import CampaignAnalytics
from app.adsmanager.modules.campaigns.models import Campaign
from app.adsmanager.modules.notifications import service as notifications
from app.adsmanager.modules.notifications.models import Notification

from conftest import bearer, get_user


def _campaign(app) -> int:
    with session_scope(app) as s:
        c = Campaign(user_id=get_user(s, "owner@example.com").id, name="Pagoda fest", budget_cents=500000)
        s.add(c)
        s.flush()
        return c.id


def test_functions_require_bearer_secret(client):
    r = client.post("/functions/v1/update-campaign-analytics", json={"campaignId": 1, "action": "start"})
    assert r.status_code == 401
    assert r.json == {"error": "Unauthorized"}

    r = client.post(
        "/functions/v1/send-notification",
        json={"userId": 1},
        headers={"Authorization": "Bearer wrong"},
    )
    assert r.status_code == 401


def test_update_campaign_analytics_start_and_update(client):
    cid = _campaign(client.application)

    r = client.post(
        "/functions/v1/update-campaign-analytics",
        json={"campaignId": cid, "action": "start"},
        headers=bearer(),
    )
    assert r.status_code == 200
    assert r.json == {"success": True, "message": "Analytics updated successfully"}

    r = client.post(
        "/functions/v1/update-campaign-analytics",
        json={"campaignId": str(cid), "action": "update"},
        headers=bearer(),
    )
    assert r.status_code == 200

    with session_scope(client.application) as s:
        rows = s.query(CampaignAnalytics).filter(CampaignAnalytics.campaign_id == cid).all()
        assert len(rows) == 1
        assert s.get(Campaign, cid).impressions == rows[0].impressions


def test_update_campaign_analytics_bad_payloads(client):
    r = client.post("/functions/v1/update-campaign-analytics", json={"action": "start"}, headers=bearer())
    assert r.status_code == 400
    assert r.json == {"error": "campaignId is required"}

    cid = _campaign(client.application)
    r = client.post(
        "/functions/v1/update-campaign-analytics",
        json={"campaignId": cid, "action": "explode"},
        headers=bearer(),
    )
    assert r.status_code == 400

    r = client.post(
        "/functions/v1/update-campaign-analytics",
        json={"campaignId": 999999, "action": "start"},
        headers=bearer(),
    )
    assert r.status_code == 400
    assert r.json == {"error": "Campaign not found"}


def test_send_notification_endpoint(client):
    app = client.application
    with session_scope(app) as s:
        owner_id = get_user(s, "owner@example.com").id

    r = client.post(
        "/functions/v1/send-notification",
        json={
            "userId": owner_id,
            "type": "performance",
            "title": "CTR up",
            "message": "Your CTR rose 12% this week.",
            "data": {"campaign_id": 3},
        },
        headers=bearer(),
    )
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["message"] == "Notification sent successfully"

    with session_scope(app) as s:
        n = s.get(Notification, r.json["notificationId"])
        assert n.user_id == owner_id
        assert n.data == {"campaign_id": 3}


def test_send_notification_endpoint_respects_preferences(client):
    app = client.application
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        notifications.update_preferences(s, owner, {"email_performance": False, "push_performance": False})
        owner_id = owner.id

    r = client.post(
        "/functions/v1/send-notification",
        json={"userId": owner_id, "type": "performance", "title": "CTR up", "message": "Nice"},
        headers=bearer(),
    )
    assert r.status_code == 200
    assert r.json == {"success": True, "message": "Notification skipped due to user preferences"}

    with session_scope(app) as s:
        assert s.query(Notification).count() == 0


def test_send_notification_endpoint_rejects_bad_data(client):
    r = client.post(
        "/functions/v1/send-notification",
        json={"userId": 1, "type": "system", "title": "t", "message": "m", "data": ["not", "a", "dict"]},
        headers=bearer(),
    )
    assert r.status_code == 400
    assert r.json == {"error": "data must be an object"}

    r = client.post(
        "/functions/v1/send-notification",
        json={"userId": 1, "type": "newsletter", "title": "t", "message": "m"},
        headers=bearer(),
    )
    assert r.status_code == 400
