from flask import Blueprint, abort, current_app, g, render_template, request, send_file

from app.adsmanager.audit import record_event
from app.adsmanager.db import db_session
from app.adsmanager.modules.billing.service import list_active_packages
from app.adsmanager.rbac import login_required
from app.adsmanager.storage import LocalStorage, StorageError, storage_from_config
from app.adsmanager.uploads import BUCKETS, UploadError, max_bytes_for_bucket, upload_media

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    return render_template("public/index.html", packages=list_active_packages(s))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/media/<path:key>")
def media(key: str):
    """Serve uploaded creatives when the local storage backend is active."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage):
        abort(404)
    if key.split("/", 1)[0] not in BUCKETS:
        abort(404)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, download_name=key.rsplit("/", 1)[-1], max_age=3600)


@bp.post("/uploads/<bucket>")
@login_required
def upload(bucket: str):
    """JSON upload endpoint used by the ad form: returns {url} or {error}."""
    user = g.current_user
    f = request.files.get("file")
    if f is None or not f.filename:
        return {"error": "Choose a file to upload."}, 400

    try:
        max_bytes = max_bytes_for_bucket(current_app.config, bucket)
        url = upload_media(
            storage_from_config(current_app.config),
            user_id=user.id,
            bucket=bucket,
            filename=f.filename,
            data=f.read(),
            content_type=f.mimetype,
            max_bytes=max_bytes,
        )
    except (UploadError, StorageError) as e:
        current_app.logger.warning("Upload rejected (bucket=%s user=%s): %s", bucket, user.id, e)
        return {"error": str(e)}, 400

    s = db_session()
    record_event(s, actor=user, action="media.upload", entity_type="Media", entity_id=bucket, metadata={"url": url})
    s.commit()
    return {"url": url}
