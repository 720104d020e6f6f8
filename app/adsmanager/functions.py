"""
Backend function endpoints.

Called by trusted jobs with ``Authorization: Bearer <FUNCTIONS_SECRET>``.
They run without a signed-in user and answer in JSON only.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, request

from app.adsmanager.db import db_session
from app.adsmanager.modules.analytics.service import run_analytics_action
from app.adsmanager.modules.notifications.service import send_notification
from app.adsmanager.security import check_bearer_secret

logger = logging.getLogger(__name__)

bp = Blueprint("functions", __name__)


def require_function_secret(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not check_bearer_secret(request, current_app.config.get("FUNCTIONS_SECRET") or ""):
            logger.warning("Rejected function call to %s (bad or missing secret)", request.path)
            return {"error": "Unauthorized"}, 401
        return fn(*args, **kwargs)

    return wrapped


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@bp.post("/update-campaign-analytics")
@require_function_secret
def update_campaign_analytics():
    body = _json_body()
    campaign_id = _as_int(body.get("campaignId"))
    action = (body.get("action") or "").strip() if isinstance(body.get("action"), str) else ""

    logger.info("Processing analytics %s for campaign %s", action or "?", campaign_id)
    if campaign_id is None:
        return {"error": "campaignId is required"}, 400

    s = db_session()
    try:
        run_analytics_action(s, campaign_id, action)
    except ValueError as e:
        s.rollback()
        logger.warning("Analytics update failed for campaign %s: %s", campaign_id, e)
        return {"error": str(e)}, 400
    s.commit()
    return {"success": True, "message": "Analytics updated successfully"}


@bp.post("/send-notification")
@require_function_secret
def send_notification_endpoint():
    body = _json_body()
    user_id = _as_int(body.get("userId"))
    data = body.get("data")

    logger.info("Sending notification to user %s", user_id)
    if user_id is None:
        return {"error": "userId is required"}, 400
    if data is not None and not isinstance(data, dict):
        return {"error": "data must be an object"}, 400

    s = db_session()
    try:
        n = send_notification(
            s,
            user_id=user_id,
            notification_type=str(body.get("type") or ""),
            title=str(body.get("title") or ""),
            message=str(body.get("message") or ""),
            data=data,
        )
    except ValueError as e:
        s.rollback()
        logger.warning("Notification to user %s failed: %s", user_id, e)
        return {"error": str(e)}, 400

    if n is None:
        return {"success": True, "message": "Notification skipped due to user preferences"}
    s.commit()
    return {"success": True, "notificationId": n.id, "message": "Notification sent successfully"}
