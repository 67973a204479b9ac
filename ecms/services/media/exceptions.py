from __future__ import annotations

from typing import Any


class MediaServiceError(ValueError):
    """Base error for the avatar pipeline."""


class ImageValidationError(MediaServiceError):
    def __init__(
        self,
        *,
        reason: str,
        message: str,
        role: str,
        limits: dict[str, Any],
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.role = role
        self.limits = limits

    def as_details(self) -> dict[str, Any]:
        return {"reason": self.reason, "role": self.role, **self.limits}


class AvatarAuthorizationError(MediaServiceError):
    pass


class ProfileNotFoundError(MediaServiceError):
    pass


class BlobNotFoundError(MediaServiceError):
    def __init__(self, blob_id: str) -> None:
        super().__init__(f"Blob {blob_id!r} not found.")
        self.blob_id = blob_id


class AvatarStorageError(MediaServiceError):
    pass


class ReclamationError(MediaServiceError):
    def __init__(self, blob_id: str, cause: BaseException) -> None:
        super().__init__(f"Failed to reclaim blob {blob_id!r}: {cause}")
        self.blob_id = blob_id
        self.cause = cause
