from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.adsmanager.modules.notifications.models import Notification, NotificationPreference

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.adsmanager.models import User

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("campaign", "performance", "billing", "system")
CHANNELS = ("email", "push")

# category -> column suffix on NotificationPreference
_PREF_SUFFIX = {
    "campaign": "campaigns",
    "performance": "performance",
    "billing": "billing",
    "system": "system",
}

# Applied when a user has no preference row yet.
DEFAULT_PREFERENCES: dict[str, bool] = {
    "email_campaigns": True,
    "email_performance": True,
    "email_billing": True,
    "email_system": True,
    "push_campaigns": False,
    "push_performance": True,
    "push_billing": True,
    "push_system": True,
}


def preference_field(channel: str, notification_type: str) -> str:
    if channel not in CHANNELS:
        raise ValueError(f"Unknown channel: {channel}")
    if notification_type not in _PREF_SUFFIX:
        raise ValueError(f"Unknown notification type: {notification_type}")
    return f"{channel}_{_PREF_SUFFIX[notification_type]}"


def get_preferences(s: "Session", user_id: int) -> NotificationPreference | None:
    return s.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).one_or_none()


def effective_preferences(pref: NotificationPreference | None) -> dict[str, bool]:
    if pref is None:
        return dict(DEFAULT_PREFERENCES)
    return {key: bool(getattr(pref, key)) for key in DEFAULT_PREFERENCES}


def wants_notification(prefs: dict[str, bool], notification_type: str) -> bool:
    """True unless both the email and the push channel are off for this category."""
    return any(prefs[preference_field(ch, notification_type)] for ch in CHANNELS)


def ensure_preferences(s: "Session", user_id: int) -> NotificationPreference:
    pref = get_preferences(s, user_id)
    if pref is None:
        pref = NotificationPreference(user_id=user_id, **DEFAULT_PREFERENCES)
        s.add(pref)
        s.flush()
    return pref


def update_preferences(s: "Session", user: "User", values: dict[str, bool]) -> NotificationPreference:
    """Apply checkbox values; keys outside the preference columns are ignored."""
    pref = ensure_preferences(s, user.id)
    for key in DEFAULT_PREFERENCES:
        if key in values:
            setattr(pref, key, bool(values[key]))
    pref.updated_at = datetime.utcnow()
    return pref


def send_notification(
    s: "Session",
    *,
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification | None:
    """
    Write a notification row unless the user disabled both channels for the category.

    Returns the new Notification, or None when skipped. Delivery over email/push
    is not performed; the row is the notification.
    """
    from app.adsmanager.models import User

    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")
    title = (title or "").strip()
    message = (message or "").strip()
    if not title or not message:
        raise ValueError("title and message are required")
    if s.get(User, user_id) is None:
        raise ValueError("User not found")

    prefs = effective_preferences(get_preferences(s, user_id))
    if not wants_notification(prefs, notification_type):
        logger.info("User %s has disabled %s notifications", user_id, notification_type)
        return None

    n = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data or {},
        read=False,
    )
    s.add(n)
    s.flush()
    logger.info("Notification written id=%s user=%s type=%s", n.id, user_id, notification_type)
    return n


def _visible(q, now: datetime):
    return q.filter(or_(Notification.expires_at.is_(None), Notification.expires_at > now))


def list_notifications(s: "Session", user: "User", *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = _visible(s.query(Notification).filter(Notification.user_id == user.id), datetime.utcnow())
    if unread_only:
        q = q.filter(Notification.read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(s: "Session", user: "User") -> int:
    q = _visible(s.query(Notification).filter(Notification.user_id == user.id), datetime.utcnow())
    return q.filter(Notification.read.is_(False)).count()


def mark_read(s: "Session", user: "User", notification_id: int) -> bool:
    n = (
        s.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .one_or_none()
    )
    if n is None:
        return False
    n.read = True
    return True


def mark_all_read(s: "Session", user: "User") -> int:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
