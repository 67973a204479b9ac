from __future__ import annotations

from ecms.db.models import UserRole

MIB = 1024 * 1024

JPEG_CONTENT_TYPE = "image/jpeg"
PNG_CONTENT_TYPE = "image/png"
WEBP_CONTENT_TYPE = "image/webp"

ALLOWED_AVATAR_CONTENT_TYPES: dict[str, str] = {
    JPEG_CONTENT_TYPE: ".jpg",
    PNG_CONTENT_TYPE: ".png",
    WEBP_CONTENT_TYPE: ".webp",
}

# Pillow format name -> content type
SNIFFED_FORMAT_CONTENT_TYPES: dict[str, str] = {
    "JPEG": JPEG_CONTENT_TYPE,
    "MPO": JPEG_CONTENT_TYPE,
    "PNG": PNG_CONTENT_TYPE,
    "WEBP": WEBP_CONTENT_TYPE,
}

PRIVILEGED_TIER_ROLES = frozenset(
    role.value for role in (UserRole.TEACHER, UserRole.ADMIN, UserRole.SUPERADMIN)
)
AVATAR_ADMIN_ROLES = frozenset(role.value for role in (UserRole.ADMIN, UserRole.SUPERADMIN))
DEFAULT_REQUESTER_ROLE = "user"

AVATAR_MEDIA_PATH_PREFIX = "/media/avatars"
AVATAR_CACHE_CONTROL = "public, max-age=31536000, immutable"

DEFAULT_CHUNK_SIZE_BYTES = 255 * 1024
DEFAULT_RECLAMATION_INTERVAL_SECONDS = 6 * 60 * 60
DEFAULT_RECLAMATION_RETENTION_DAYS = 30.0
MIN_RECLAMATION_INTERVAL_SECONDS = 60
BLOB_LIST_PAGE_SIZE = 200
