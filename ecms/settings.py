from dataclasses import dataclass
import os

DEFAULT_SECURITY_PERMISSIONS_POLICY = (
    "accelerometer=(), autoplay=(), camera=(), display-capture=(), "
    "geolocation=(), gyroscope=(), microphone=(), payment=(), usb=()"
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    return float(value)


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or default


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "ecms-media")
    app_env: str = _env_str("APP_ENV", "production")
    database_url: str = os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://ecms:ecms@db:5432/ecms",
    )
    database_pool_mode: str = _env_str("DATABASE_POOL_MODE", "auto")
    database_pool_size: int = _env_int("DATABASE_POOL_SIZE", 5)
    database_pool_max_overflow: int = _env_int("DATABASE_POOL_MAX_OVERFLOW", 10)
    database_pool_timeout_seconds: int = _env_int("DATABASE_POOL_TIMEOUT_SECONDS", 30)
    session_secret_key: str = os.getenv("SESSION_SECRET_KEY", "dev-insecure-session-key")
    session_cookie_secure: bool = _env_bool("SESSION_COOKIE_SECURE", False)
    auth_jwt_secret: str = os.getenv("AUTH_JWT_SECRET", "dev-insecure-jwt-secret-change-me-in-production")
    auth_jwt_algorithm: str = _env_str("AUTH_JWT_ALGORITHM", "HS256")
    security_headers_enabled: bool = _env_bool("SECURITY_HEADERS_ENABLED", True)
    security_x_content_type_options: str = _env_str("SECURITY_X_CONTENT_TYPE_OPTIONS", "nosniff")
    security_x_frame_options: str = _env_str("SECURITY_X_FRAME_OPTIONS", "DENY")
    security_referrer_policy: str = _env_str("SECURITY_REFERRER_POLICY", "strict-origin-when-cross-origin")
    security_permissions_policy: str = _env_str(
        "SECURITY_PERMISSIONS_POLICY",
        DEFAULT_SECURITY_PERMISSIONS_POLICY,
    )
    security_cross_origin_resource_policy: str = _env_str(
        "SECURITY_CROSS_ORIGIN_RESOURCE_POLICY",
        "same-site",
    )
    log_level: str = _env_str("LOG_LEVEL", "INFO")
    log_format: str = _env_str("LOG_FORMAT", "console")
    log_requests: bool = _env_bool("LOG_REQUESTS", True)
    log_uvicorn_access: bool = _env_bool("LOG_UVICORN_ACCESS", False)
    log_request_skip_paths: str = _env_str("LOG_REQUEST_SKIP_PATHS", "/healthz")
    log_redact_fields: str = os.getenv("LOG_REDACT_FIELDS", "")
    media_storage_backend: str = _env_str("MEDIA_STORAGE_BACKEND", "filesystem")
    media_upload_dir: str = _env_str(
        "MEDIA_UPLOAD_DIR",
        "/tmp/ecms_uploads/profile_images",
    )
    media_chunk_size_bytes: int = _env_int("MEDIA_CHUNK_SIZE_BYTES", 255 * 1024)
    media_default_avatar_url: str = _env_str(
        "MEDIA_DEFAULT_AVATAR_URL",
        "/static/images/profile/default/default-profile.png",
    )
    media_static_dir: str = _env_str("MEDIA_STATIC_DIR", "/app/public")
    media_reclamation_enabled: bool = _env_bool("MEDIA_RECLAMATION_ENABLED", True)
    media_reclamation_interval_seconds: int = _env_int(
        "MEDIA_RECLAMATION_INTERVAL_SECONDS",
        6 * 60 * 60,
    )
    media_reclamation_retention_days: float = _env_float(
        "MEDIA_RECLAMATION_RETENTION_DAYS",
        30.0,
    )


settings = Settings()
