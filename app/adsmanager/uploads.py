"""
Media upload helper for ad creatives.

Objects are stored as ``<bucket>/<user_id>/<epoch_ms>.<ext>`` and addressed by
their public URL. Removal re-derives ``<user_id>/<filename>`` from the last
two segments of that URL.
"""
from __future__ import annotations

import logging
import mimetypes
import re
import time
from urllib.parse import urlsplit

from werkzeug.utils import secure_filename

from app.adsmanager.storage import Storage, StorageError

logger = logging.getLogger(__name__)

BUCKET_IMAGES = "campaign-images"
BUCKET_VIDEOS = "campaign-videos"

# bucket -> (accepted content-type prefix, config key for the size ceiling)
BUCKETS: dict[str, tuple[str, str]] = {
    BUCKET_IMAGES: ("image/", "MAX_IMAGE_UPLOAD_BYTES"),
    BUCKET_VIDEOS: ("video/", "MAX_VIDEO_UPLOAD_BYTES"),
}

_DEFAULT_MAX_BYTES = {
    BUCKET_IMAGES: 10 * 1024 * 1024,
    BUCKET_VIDEOS: 50 * 1024 * 1024,
}

_EXT_RE = re.compile(r"^[a-z0-9]{1,8}$")


class UploadError(ValueError):
    pass


def bucket_for_ad_type(ad_type: str) -> str:
    return BUCKET_VIDEOS if ad_type == "video" else BUCKET_IMAGES


def max_bytes_for_bucket(config: dict, bucket: str) -> int:
    if bucket not in BUCKETS:
        raise UploadError(f"Unknown bucket: {bucket}")
    _, key = BUCKETS[bucket]
    return int(config.get(key) or _DEFAULT_MAX_BYTES[bucket])


def _size_label(max_bytes: int) -> str:
    return f"{round(max_bytes / (1024 * 1024))}MB"


def file_extension(filename: str, content_type: str | None) -> str:
    safe = secure_filename(filename or "")
    if "." in safe:
        ext = safe.rsplit(".", 1)[-1].lower()
        if _EXT_RE.match(ext):
            return ext
    guessed = mimetypes.guess_extension((content_type or "").split(";")[0].strip()) if content_type else None
    if guessed:
        return guessed.lstrip(".")
    return "bin"


def validate_upload(
    *,
    bucket: str,
    size_bytes: int,
    content_type: str | None,
    max_bytes: int,
) -> list[str]:
    """Checks that run before any storage call. Returns list of errors."""
    errors: list[str] = []
    if bucket not in BUCKETS:
        errors.append(f"Unknown bucket: {bucket}")
        return errors
    if size_bytes <= 0:
        errors.append("Choose a file to upload.")
    elif size_bytes > max_bytes:
        errors.append(f"File too large: file size must be less than {_size_label(max_bytes)}")
    prefix, _ = BUCKETS[bucket]
    ct = (content_type or "").strip().lower()
    if ct and not ct.startswith(prefix):
        kind = "an image" if prefix == "image/" else "a video"
        errors.append(f"Unsupported file type: {bucket} only accepts {kind}.")
    return errors


def build_media_key(bucket: str, user_id: int, filename: str, content_type: str | None, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{bucket}/{user_id}/{now_ms}.{file_extension(filename, content_type)}"


def upload_media(
    storage: Storage,
    *,
    user_id: int,
    bucket: str,
    filename: str,
    data: bytes,
    content_type: str | None,
    max_bytes: int,
    now_ms: int | None = None,
) -> str:
    """Validate, store, and return the public URL of an uploaded creative."""
    errors = validate_upload(bucket=bucket, size_bytes=len(data), content_type=content_type, max_bytes=max_bytes)
    if errors:
        raise UploadError(errors[0])

    key = build_media_key(bucket, user_id, filename, content_type, now_ms=now_ms)
    storage.put_bytes(key, data, content_type=content_type)
    logger.info("Uploaded media key=%s size=%s", key, len(data))
    return storage.public_url(key)


def media_key_from_url(bucket: str, url: str) -> str | None:
    """Recover the storage key from a public URL (last two path segments)."""
    if not url:
        return None
    parts = [p for p in urlsplit(url).path.split("/") if p]
    if len(parts) < 2:
        return None
    owner, filename = parts[-2], parts[-1]
    return f"{bucket}/{owner}/{filename}"


def url_belongs_to_user(storage: Storage, bucket: str, url: str | None, user_id: int) -> bool:
    """True only for URLs this storage issued under the user's own segment."""
    key = media_key_from_url(bucket, url or "")
    if not key or key.split("/")[1] != str(user_id):
        return False
    try:
        return storage.public_url(key) == url
    except StorageError:
        return False


def remove_media(storage: Storage, *, bucket: str, url: str, user_id: int) -> bool:
    """
    Best-effort removal of a previously uploaded object.

    Only objects this storage issued under the caller's own ``<user_id>/``
    segment are touched; pasted external URLs are left alone.
    Storage failures are logged, not raised.
    """
    if not url_belongs_to_user(storage, bucket, url, user_id):
        return False
    key = media_key_from_url(bucket, url)
    try:
        storage.delete(key)  # type: ignore[arg-type]
    except Exception as e:  # StorageError, OSError, botocore ClientError
        logger.error("Error removing media key=%s: %s", key, e)
        return False
    return True
