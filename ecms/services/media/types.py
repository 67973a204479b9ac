from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeAlias


@dataclass(frozen=True)
class ImageLimits:
    tier: str
    max_bytes: int
    min_width: int
    min_height: int
    max_width: int
    max_height: int

    def dimension_bounds(self) -> dict[str, int]:
        return {
            "min_width": self.min_width,
            "min_height": self.min_height,
            "max_width": self.max_width,
            "max_height": self.max_height,
        }


@dataclass(frozen=True)
class ValidatedImage:
    content_type: str
    extension: str
    size_bytes: int
    width: int
    height: int
    limits: ImageLimits


@dataclass(frozen=True)
class DefaultAvatar:
    is_default: bool = field(default=True, init=False)


@dataclass(frozen=True)
class StoredAvatar:
    blob_id: str
    uploaded_at: datetime
    is_default: bool = field(default=False, init=False)


AvatarPointer: TypeAlias = DefaultAvatar | StoredAvatar


@dataclass(frozen=True)
class ProfileRecord:
    user_id: int
    pointer: AvatarPointer
    created_at: datetime
    updated_at: datetime

    @property
    def is_default(self) -> bool:
        return self.pointer.is_default

    @property
    def blob_id(self) -> str | None:
        if isinstance(self.pointer, StoredAvatar):
            return self.pointer.blob_id
        return None

    @property
    def uploaded_at(self) -> datetime | None:
        if isinstance(self.pointer, StoredAvatar):
            return self.pointer.uploaded_at
        return None


@dataclass(frozen=True)
class BlobInfo:
    blob_id: str
    size_bytes: int
    created_at: datetime
    modified_at: datetime

    @property
    def last_touched_at(self) -> datetime:
        return max(self.created_at, self.modified_at)


@dataclass(frozen=True)
class BlobContent:
    blob_id: str
    content_type: str
    size_bytes: int
    chunks: AsyncIterator[bytes]


@dataclass(frozen=True)
class Requester:
    user_id: int
    role: str


@dataclass(frozen=True)
class AvatarUploadResult:
    profile: ProfileRecord
    blob_id: str
    url: str
    previous_blob_id: str | None = None


@dataclass(frozen=True)
class ReclamationResult:
    deleted: int
    kept: int
    failed: int
    total: int
    cutoff: datetime

    def as_log_fields(self) -> dict[str, Any]:
        return {
            "deleted": self.deleted,
            "kept": self.kept,
            "failed": self.failed,
            "total": self.total,
            "cutoff": self.cutoff.isoformat(),
        }
