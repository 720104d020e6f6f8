import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    s3_public_base_url: str

    functions_secret: str
    max_image_upload_mb: int
    max_video_upload_mb: int
    analytics_refresh_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///adsmanager.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "sgp1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        s3_public_base_url=_getenv("S3_PUBLIC_BASE_URL", ""),
        functions_secret=_getenv("FUNCTIONS_SECRET", ""),
        max_image_upload_mb=_getenv_int("MAX_IMAGE_UPLOAD_MB", 10),
        max_video_upload_mb=_getenv_int("MAX_VIDEO_UPLOAD_MB", 50),
        analytics_refresh_seconds=_getenv_int("ANALYTICS_REFRESH_SECONDS", 30),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "S3_PUBLIC_BASE_URL": s.s3_public_base_url,
        "FUNCTIONS_SECRET": s.functions_secret,
        "MAX_IMAGE_UPLOAD_BYTES": s.max_image_upload_mb * 1024 * 1024,
        "MAX_VIDEO_UPLOAD_BYTES": s.max_video_upload_mb * 1024 * 1024,
        "ANALYTICS_REFRESH_SECONDS": s.analytics_refresh_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request ceiling; the video limit is the largest single upload
        "MAX_CONTENT_LENGTH": (s.max_video_upload_mb + 1) * 1024 * 1024,
    }
