from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ecms.logging_utils import structured_log
from ecms.services.media import profiles as profile_store
from ecms.services.media.blob_store import BlobStore
from ecms.services.media.cleanup import BlobCleanupDispatcher
from ecms.services.media.clock import utc_now
from ecms.services.media.constants import AVATAR_ADMIN_ROLES, AVATAR_MEDIA_PATH_PREFIX
from ecms.services.media.exceptions import (
    AvatarAuthorizationError,
    AvatarStorageError,
    BlobNotFoundError,
    MediaServiceError,
    ProfileNotFoundError,
)
from ecms.services.media.types import (
    AvatarPointer,
    AvatarUploadResult,
    BlobContent,
    ProfileRecord,
    Requester,
    StoredAvatar,
)
from ecms.services.media.validation import normalize_role, validate_image

logger = logging.getLogger(__name__)


def avatar_media_path(blob_id: str) -> str:
    return f"{AVATAR_MEDIA_PATH_PREFIX}/{blob_id}"


def _previous_blob_id(pointer: AvatarPointer | None) -> str | None:
    if isinstance(pointer, StoredAvatar):
        return pointer.blob_id
    return None


class AvatarService:
    """Upload and revert avatars.

    Order of an upload: authorize, validate, ``put`` the new blob, swap the
    profile pointer and commit, then hand the superseded blob to the
    cleanup dispatcher. A crash between steps leaves the profile pointing
    at a live blob; the worst case is an orphan the reclamation job sweeps.
    """

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        default_avatar_url: str,
        cleanup: BlobCleanupDispatcher | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._default_avatar_url = default_avatar_url
        self._cleanup = cleanup or BlobCleanupDispatcher(blob_store)

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store

    @property
    def cleanup(self) -> BlobCleanupDispatcher:
        return self._cleanup

    def authorize(self, requester: Requester, user_id: int) -> None:
        if requester.user_id == user_id:
            return
        if normalize_role(requester.role) in AVATAR_ADMIN_ROLES:
            return
        structured_log(
            logger,
            "warning",
            "media.avatar_access_denied",
            user_id=user_id,
            requester_id=requester.user_id,
            role=requester.role,
        )
        raise AvatarAuthorizationError("Only the profile owner or an administrator may do this.")

    def avatar_url(self, pointer: AvatarPointer) -> str:
        if isinstance(pointer, StoredAvatar):
            return avatar_media_path(pointer.blob_id)
        return self._default_avatar_url

    def project(self, record: ProfileRecord) -> dict[str, Any]:
        return {
            "user_id": record.user_id,
            "avatar_url": self.avatar_url(record.pointer),
            "blob_id": record.blob_id,
            "is_default": record.is_default,
            "uploaded_at": record.uploaded_at,
            "updated_at": record.updated_at,
        }

    async def get_profile(
        self,
        db_session: AsyncSession,
        *,
        requester: Requester,
        user_id: int,
    ) -> ProfileRecord:
        self.authorize(requester, user_id)
        record = await profile_store.get_by_user(db_session, user_id=user_id)
        if record is None:
            raise ProfileNotFoundError("Profile not found.")
        return record

    async def upload_avatar(
        self,
        db_session: AsyncSession,
        *,
        requester: Requester,
        user_id: int,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> AvatarUploadResult:
        self.authorize(requester, user_id)
        validated = validate_image(data, content_type, requester.role)

        try:
            blob_id = await self._blob_store.put(
                data,
                filename=filename or f"avatar{validated.extension}",
                content_type=validated.content_type,
                metadata={"user_id": user_id, "uploaded_by": requester.user_id},
            )
        except MediaServiceError:
            raise
        except Exception as exc:
            logger.exception(
                "media.avatar_store_failed",
                extra={"user_id": user_id, "backend": self._blob_store.backend_name},
            )
            raise AvatarStorageError("Failed to store the uploaded image.") from exc

        uploaded_at = utc_now()
        try:
            previous = await profile_store.lock_current_pointer(db_session, user_id=user_id)
            record = await profile_store.upsert_avatar(
                db_session,
                user_id=user_id,
                pointer=StoredAvatar(blob_id=blob_id, uploaded_at=uploaded_at),
                now=uploaded_at,
            )
            await db_session.commit()
        except ProfileNotFoundError:
            # The insert was rejected outright, so the new blob is unreferenced.
            self._cleanup.schedule(blob_id, user_id=user_id, reason="unknown_user")
            raise
        except SQLAlchemyError as exc:
            await db_session.rollback()
            logger.exception(
                "media.avatar_pointer_swap_failed",
                extra={"user_id": user_id, "blob_id": blob_id},
            )
            raise AvatarStorageError("Failed to update the profile image.") from exc

        previous_blob_id = _previous_blob_id(previous)
        if previous_blob_id and previous_blob_id != blob_id:
            self._cleanup.schedule(previous_blob_id, user_id=user_id, reason="replaced")

        structured_log(
            logger,
            "info",
            "media.avatar_uploaded",
            user_id=user_id,
            requester_id=requester.user_id,
            blob_id=blob_id,
            previous_blob_id=previous_blob_id,
            content_type=validated.content_type,
            size_bytes=validated.size_bytes,
            width=validated.width,
            height=validated.height,
            tier=validated.limits.tier,
        )
        return AvatarUploadResult(
            profile=record,
            blob_id=blob_id,
            url=avatar_media_path(blob_id),
            previous_blob_id=previous_blob_id,
        )

    async def revert_avatar(
        self,
        db_session: AsyncSession,
        *,
        requester: Requester,
        user_id: int,
    ) -> ProfileRecord:
        self.authorize(requester, user_id)
        try:
            previous = await profile_store.lock_current_pointer(db_session, user_id=user_id)
            record = await profile_store.revert_to_default(db_session, user_id=user_id)
            await db_session.commit()
        except SQLAlchemyError as exc:
            await db_session.rollback()
            logger.exception("media.avatar_revert_failed", extra={"user_id": user_id})
            raise AvatarStorageError("Failed to reset the profile image.") from exc

        previous_blob_id = _previous_blob_id(previous)
        if previous_blob_id:
            self._cleanup.schedule(previous_blob_id, user_id=user_id, reason="reverted")

        structured_log(
            logger,
            "info",
            "media.avatar_reverted",
            user_id=user_id,
            requester_id=requester.user_id,
            previous_blob_id=previous_blob_id,
        )
        return record

    async def open_avatar(self, blob_id: str) -> BlobContent:
        try:
            return await self._blob_store.get(blob_id)
        except BlobNotFoundError:
            raise
        except Exception as exc:
            logger.exception(
                "media.avatar_read_failed",
                extra={"blob_id": blob_id, "backend": self._blob_store.backend_name},
            )
            raise AvatarStorageError("Failed to read the profile image.") from exc
