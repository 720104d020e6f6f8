import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, flash, g, redirect, render_template, request, session, url_for

from app.adsmanager.auth import bp as auth_bp, load_current_user
from app.adsmanager.config import load_config
from app.adsmanager.db import db_session, init_db, teardown_db_session
from app.adsmanager.functions import bp as functions_bp
from app.adsmanager.modules.ads.routes import bp as ads_bp
from app.adsmanager.modules.analytics.routes import bp as analytics_bp
from app.adsmanager.modules.billing.routes import bp as billing_bp
from app.adsmanager.modules.campaigns.routes import bp as campaigns_bp
from app.adsmanager.modules.dashboard.routes import bp as dashboard_bp
from app.adsmanager.modules.notifications.routes import bp as notifications_bp
from app.adsmanager.modules.profiles.routes import bp as profiles_bp
from app.adsmanager.routes import bp as routes_bp

logger = logging.getLogger(__name__)

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (minimal)
    from app.adsmanager.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.adsmanager.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm}

    @app.context_processor
    def _inject_unread() -> dict:
        from app.adsmanager.modules.notifications.service import unread_count

        def unread_notifications() -> int:
            user = getattr(g, "current_user", None)
            return unread_count(db_session(), user) if user else 0

        return {"unread_notifications": unread_notifications}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.template_filter("money")
    def _money_filter(cents) -> str:
        return f"{(cents or 0) / 100:,.2f}"

    @app.template_filter("number")
    def _number_filter(value) -> str:
        return f"{int(value or 0):,}"

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            endpoint = request.endpoint or ""
            # Login/signup/logout, and bearer-authenticated function endpoints
            if endpoint.startswith(("auth.", "functions.")):
                return None
            if not validate_csrf(request):
                if request.is_json or request.path.startswith(("/uploads/", "/analytics/")):
                    return {"error": "CSRF token missing or invalid."}, 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("FUNCTIONS_SECRET"):
            raise RuntimeError("FUNCTIONS_SECRET must be set in production.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(functions_bp, url_prefix="/functions/v1")
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(ads_bp)
    app.register_blueprint(analytics_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(notifications_bp)

    def _load_user_wrapper():
        if request.path.startswith(_PUBLIC_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if request.path.startswith(("/functions/", "/uploads/", "/analytics/")):
            return {"error": "Not found"}, 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return render_template("errors/500.html", request_id=rid), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = app.config["MAX_VIDEO_UPLOAD_BYTES"] // (1024 * 1024)
        message = f"File too large: file size must be less than {limit_mb}MB"
        if request.path.startswith("/uploads/"):
            return {"error": message}, 413
        flash(message, "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("dashboard.index")), 302

    logger.info("create_app() complete; app ready to serve")

    return app
