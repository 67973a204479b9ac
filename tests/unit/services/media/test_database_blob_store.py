from __future__ import annotations

import os

import pytest
from sqlalchemy import func, select

from ecms.db.models import MediaBlob, MediaBlobChunk
from ecms.services.media.blob_store import BlobStore, read_all
from ecms.services.media.database_store import DatabaseBlobStore, split_chunks
from ecms.services.media.exceptions import BlobNotFoundError


def test_split_chunks_bounds_every_chunk() -> None:
    chunks = split_chunks(b"abcdefghij", 4)

    assert chunks == [b"abcd", b"efgh", b"ij"]
    assert split_chunks(b"", 4) == []


@pytest.mark.asyncio
async def test_put_writes_catalog_and_ordered_chunks(session_factory) -> None:
    store = DatabaseBlobStore(session_factory, chunk_size=1024)
    payload = os.urandom(10 * 1024 + 17)

    blob_id = await store.put(
        payload,
        filename="avatar.png",
        content_type="image/png",
        metadata={"user_id": 7},
    )

    async with session_factory() as session:
        blob = await session.get(MediaBlob, blob_id)
        chunk_count = (
            await session.execute(
                select(func.count()).select_from(MediaBlobChunk).where(MediaBlobChunk.blob_id == blob_id)
            )
        ).scalar_one()
    assert isinstance(store, BlobStore)
    assert blob is not None
    assert blob.length == len(payload)
    assert blob.owner_user_id == 7
    assert chunk_count == 11

    content = await store.get(blob_id)
    assert content.content_type == "image/png"
    assert content.size_bytes == len(payload)
    assert await read_all(content) == payload


@pytest.mark.asyncio
async def test_delete_removes_catalog_and_chunks(session_factory) -> None:
    store = DatabaseBlobStore(session_factory, chunk_size=8)
    blob_id = await store.put(b"0123456789abcdef", filename="a.jpg", content_type="image/jpeg")

    assert await store.delete(blob_id) is True
    assert await store.delete(blob_id) is False

    async with session_factory() as session:
        remaining = (await session.execute(select(func.count()).select_from(MediaBlobChunk))).scalar_one()
    assert remaining == 0
    with pytest.raises(BlobNotFoundError):
        await store.get(blob_id)


@pytest.mark.asyncio
async def test_list_pages_through_the_whole_catalog(session_factory) -> None:
    store = DatabaseBlobStore(session_factory, page_size=2)
    blob_ids = {
        await store.put(f"blob-{index}".encode(), filename=f"{index}.png", content_type="image/png")
        for index in range(5)
    }

    listed = [blob async for blob in store.list()]

    assert {blob.blob_id for blob in listed} == blob_ids
    assert all(blob.created_at.tzinfo is not None for blob in listed)


@pytest.mark.asyncio
async def test_empty_blob_round_trips(session_factory) -> None:
    store = DatabaseBlobStore(session_factory)

    blob_id = await store.put(b"", filename="empty.png", content_type="image/png")

    assert await read_all(await store.get(blob_id)) == b""
