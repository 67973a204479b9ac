from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.db.models import MediaBlob, MediaBlobChunk
from ecms.logging_utils import structured_log
from ecms.services.media.clock import as_utc, utc_now
from ecms.services.media.constants import BLOB_LIST_PAGE_SIZE, DEFAULT_CHUNK_SIZE_BYTES
from ecms.services.media.exceptions import BlobNotFoundError
from ecms.services.media.types import BlobContent, BlobInfo

logger = logging.getLogger(__name__)

CHUNK_READ_BATCH = 8


def split_chunks(data: bytes, chunk_size: int) -> list[bytes]:
    if not data:
        return []
    return [data[offset:offset + chunk_size] for offset in range(0, len(data), chunk_size)]


def _owner_user_id(metadata: Mapping[str, Any] | None) -> int | None:
    value = (metadata or {}).get("user_id")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class DatabaseBlobStore:
    """Chunked blob storage in the relational database.

    Modelled on a GridFS bucket: ``media_blobs`` is the catalog and
    ``media_blob_chunks`` holds the content in ordered chunks of at most
    ``chunk_size`` bytes. Catalog row and chunks are written in a single
    transaction, so an interrupted upload leaves nothing behind.
    """

    backend_name = "database"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE_BYTES,
        page_size: int = BLOB_LIST_PAGE_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._chunk_size = max(1, int(chunk_size))
        self._page_size = max(1, int(page_size))

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def put(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> str:
        blob_id = uuid4().hex
        now = utc_now()
        chunks = split_chunks(data, self._chunk_size)
        async with self._session_factory() as session:
            session.add(
                MediaBlob(
                    id=blob_id,
                    filename=filename[:255] or blob_id,
                    content_type=content_type,
                    length=len(data),
                    chunk_size=self._chunk_size,
                    owner_user_id=_owner_user_id(metadata),
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()
            session.add_all(
                MediaBlobChunk(blob_id=blob_id, sequence=sequence, data=chunk)
                for sequence, chunk in enumerate(chunks)
            )
            await session.commit()
        structured_log(
            logger,
            "debug",
            "media.db_blob_written",
            blob_id=blob_id,
            size_bytes=len(data),
            chunk_count=len(chunks),
            content_type=content_type,
        )
        return blob_id

    async def get(self, blob_id: str) -> BlobContent:
        async with self._session_factory() as session:
            blob = await session.get(MediaBlob, blob_id)
        if blob is None:
            raise BlobNotFoundError(blob_id)
        return BlobContent(
            blob_id=blob_id,
            content_type=blob.content_type,
            size_bytes=int(blob.length),
            chunks=self._iter_chunks(blob_id),
        )

    async def _iter_chunks(self, blob_id: str) -> AsyncIterator[bytes]:
        next_sequence = 0
        while True:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(MediaBlobChunk.sequence, MediaBlobChunk.data)
                    .where(
                        MediaBlobChunk.blob_id == blob_id,
                        MediaBlobChunk.sequence >= next_sequence,
                    )
                    .order_by(MediaBlobChunk.sequence.asc())
                    .limit(CHUNK_READ_BATCH)
                )
                rows = result.all()
            if not rows:
                return
            for sequence, data in rows:
                next_sequence = int(sequence) + 1
                yield bytes(data)

    async def delete(self, blob_id: str) -> bool:
        async with self._session_factory() as session:
            await session.execute(delete(MediaBlobChunk).where(MediaBlobChunk.blob_id == blob_id))
            result = await session.execute(delete(MediaBlob).where(MediaBlob.id == blob_id))
            await session.commit()
        if not result.rowcount:
            structured_log(logger, "warning", "media.blob_missing_on_delete", blob_id=blob_id, backend=self.backend_name)
            return False
        structured_log(logger, "info", "media.blob_deleted", blob_id=blob_id, backend=self.backend_name)
        return True

    async def list(self) -> AsyncIterator[BlobInfo]:
        last_id = ""
        while True:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        MediaBlob.id,
                        MediaBlob.length,
                        MediaBlob.created_at,
                        MediaBlob.updated_at,
                    )
                    .where(MediaBlob.id > last_id)
                    .order_by(MediaBlob.id.asc())
                    .limit(self._page_size)
                )
                rows = result.all()
            if not rows:
                return
            for blob_id, length, created_at, updated_at in rows:
                last_id = blob_id
                yield BlobInfo(
                    blob_id=blob_id,
                    size_bytes=int(length),
                    created_at=as_utc(created_at),
                    modified_at=as_utc(updated_at),
                )
            if len(rows) < self._page_size:
                return

    async def close(self) -> None:
        return None
