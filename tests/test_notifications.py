import pytest

from app.adsmanager.db import session_scope
from app.adsmanager.modules.notifications import service as notifications
from app.adsmanager.modules.notifications.models import Notification

from conftest import form, get_user, login


def test_preference_field_maps_campaign_to_plural_column():
    assert notifications.preference_field("email", "campaign") == "email_campaigns"
    assert notifications.preference_field("push", "performance") == "push_performance"
    with pytest.raises(ValueError):
        notifications.preference_field("sms", "campaign")


def test_defaults_apply_without_preference_row(app):
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        n = notifications.send_notification(
            s, user_id=owner.id, notification_type="campaign", title="Hello", message="World"
        )
        assert n is not None
        assert n.read is False
        assert n.data == {}


def test_notification_skipped_when_both_channels_off(app):
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        notifications.update_preferences(s, owner, {"email_campaigns": False, "push_campaigns": False})
        skipped = notifications.send_notification(
            s, user_id=owner.id, notification_type="campaign", title="Hello", message="World"
        )
        assert skipped is None
        kept = notifications.send_notification(
            s, user_id=owner.id, notification_type="billing", title="Invoice", message="Paid"
        )
        assert kept is not None
        assert s.query(Notification).filter(Notification.user_id == owner.id).count() == 1


def test_one_channel_on_is_enough(app):
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        notifications.update_preferences(s, owner, {"email_system": False, "push_system": True})
        assert notifications.send_notification(
            s, user_id=owner.id, notification_type="system", title="Maintenance", message="Tonight"
        )


def test_send_notification_validates_input(app):
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        with pytest.raises(ValueError):
            notifications.send_notification(s, user_id=owner.id, notification_type="promo", title="a", message="b")
        with pytest.raises(ValueError):
            notifications.send_notification(s, user_id=owner.id, notification_type="system", title="", message="b")
        with pytest.raises(ValueError):
            notifications.send_notification(s, user_id=999999, notification_type="system", title="a", message="b")


def test_mark_read_and_read_all(client):
    app = client.application
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        other = get_user(s, "other@example.com")
        first = notifications.send_notification(
            s, user_id=owner.id, notification_type="system", title="One", message="1"
        )
        notifications.send_notification(s, user_id=owner.id, notification_type="system", title="Two", message="2")
        foreign = notifications.send_notification(
            s, user_id=other.id, notification_type="system", title="Other", message="x"
        )
        first_id, foreign_id = first.id, foreign.id

    login(client)
    r = client.get("/notifications?unread=1")
    assert r.status_code == 200
    assert b"One" in r.data

    assert client.post(f"/notifications/{foreign_id}/read", data=form()).status_code == 404
    client.post(f"/notifications/{first_id}/read", data=form(), follow_redirects=False)
    with session_scope(app) as s:
        assert s.get(Notification, first_id).read is True
        owner = get_user(s, "owner@example.com")
        assert notifications.unread_count(s, owner) == 1

    client.post("/notifications/read-all", data=form(), follow_redirects=False)
    with session_scope(app) as s:
        owner = get_user(s, "owner@example.com")
        assert notifications.unread_count(s, owner) == 0
        assert s.get(Notification, foreign_id).read is False


def test_settings_form_saves_preferences(client):
    login(client)
    r = client.post(
        "/settings/notifications",
        data=form(email_campaigns="on", push_billing="on"),
        follow_redirects=False,
    )
    assert r.status_code == 302
    with session_scope(client.application) as s:
        owner = get_user(s, "owner@example.com")
        prefs = notifications.effective_preferences(notifications.get_preferences(s, owner.id))
        assert prefs["email_campaigns"] is True
        assert prefs["push_billing"] is True
        assert prefs["email_billing"] is False
        assert prefs["push_system"] is False
