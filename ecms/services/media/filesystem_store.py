from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from datetime import UTC, datetime
import logging
import mimetypes
import os
from pathlib import Path
import re
from stat import S_ISREG
from typing import Any, BinaryIO
from uuid import uuid4

from ecms.logging_utils import structured_log
from ecms.services.media.constants import ALLOWED_AVATAR_CONTENT_TYPES
from ecms.services.media.exceptions import BlobNotFoundError
from ecms.services.media.types import BlobContent, BlobInfo

logger = logging.getLogger(__name__)

BLOB_FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}(\.[A-Za-z0-9]{1,8})?$")
READ_CHUNK_SIZE = 64 * 1024


def _ensure_upload_root(upload_dir: str | Path, *, create: bool) -> Path:
    root = Path(upload_dir).expanduser().resolve()
    if create:
        root.mkdir(parents=True, exist_ok=True)
    return root


def _resolve_upload_path(upload_root: Path, blob_id: str) -> Path:
    if not BLOB_FILENAME_PATTERN.fullmatch(blob_id):
        raise BlobNotFoundError(blob_id)
    candidate = (upload_root / blob_id).resolve()
    if candidate.parent != upload_root:
        raise BlobNotFoundError(blob_id)
    return candidate


def _extension_for(content_type: str, filename: str) -> str:
    extension = ALLOWED_AVATAR_CONTENT_TYPES.get(content_type)
    if extension:
        return extension
    suffix = Path(filename).suffix.lower()
    if suffix and BLOB_FILENAME_PATTERN.fullmatch(f"x{suffix}"):
        return suffix
    return ".bin"


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=UTC)


def _write_new_file(path: Path, data: bytes) -> None:
    # "xb" refuses to replace an existing blob.
    with path.open("xb") as handle:
        handle.write(data)


class FilesystemBlobStore:
    """Blobs as flat files under one upload directory; the file name is the id."""

    backend_name = "filesystem"

    def __init__(self, upload_dir: str | Path) -> None:
        self._root = _ensure_upload_root(upload_dir, create=True)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, blob_id: str) -> Path:
        return _resolve_upload_path(self._root, blob_id)

    async def put(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        blob_id = f"{uuid4().hex}{_extension_for(content_type, filename)}"
        path = self.path_for(blob_id)
        try:
            await asyncio.to_thread(_write_new_file, path, data)
        except FileExistsError:
            # The file belongs to another blob; leave it in place.
            raise
        except OSError:
            await asyncio.to_thread(path.unlink, missing_ok=True)
            raise
        structured_log(
            logger,
            "debug",
            "media.fs_blob_written",
            blob_id=blob_id,
            size_bytes=len(data),
            content_type=content_type,
            metadata=dict(metadata or {}),
        )
        return blob_id

    async def get(self, blob_id: str) -> BlobContent:
        path = self.path_for(blob_id)
        try:
            handle = await asyncio.to_thread(path.open, "rb")
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise BlobNotFoundError(blob_id) from exc
        size_bytes = os.fstat(handle.fileno()).st_size
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return BlobContent(
            blob_id=blob_id,
            content_type=content_type,
            size_bytes=size_bytes,
            chunks=self._iter_chunks(handle),
        )

    async def _iter_chunks(self, handle: BinaryIO) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, READ_CHUNK_SIZE)
                if not chunk:
                    return
                yield chunk
        finally:
            handle.close()

    async def delete(self, blob_id: str) -> bool:
        try:
            path = self.path_for(blob_id)
            await asyncio.to_thread(path.unlink)
        except (BlobNotFoundError, FileNotFoundError):
            structured_log(logger, "warning", "media.blob_missing_on_delete", blob_id=blob_id, backend=self.backend_name)
            return False
        structured_log(logger, "info", "media.blob_deleted", blob_id=blob_id, backend=self.backend_name)
        return True

    async def list(self) -> AsyncIterator[BlobInfo]:
        names = await asyncio.to_thread(os.listdir, self._root)
        for name in sorted(names):
            if name.startswith(".") or not BLOB_FILENAME_PATTERN.fullmatch(name):
                continue
            try:
                stat = await asyncio.to_thread(os.stat, self._root / name)
            except FileNotFoundError:
                continue
            if not S_ISREG(stat.st_mode):
                continue
            yield BlobInfo(
                blob_id=name,
                size_bytes=int(stat.st_size),
                created_at=_timestamp(stat.st_ctime),
                modified_at=_timestamp(stat.st_mtime),
            )

    async def close(self) -> None:
        return None
