from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest

from ecms.services.media.blob_store import BlobStore, read_all
from ecms.services.media.exceptions import BlobNotFoundError
from ecms.services.media.filesystem_store import FilesystemBlobStore


def test_filesystem_store_satisfies_blob_store_protocol(fs_store) -> None:
    assert isinstance(fs_store, BlobStore)
    assert fs_store.root.is_dir()


@pytest.mark.asyncio
async def test_put_then_get_streams_the_same_bytes(fs_store) -> None:
    payload = b"\x89PNG" + os.urandom(200_000)

    blob_id = await fs_store.put(payload, filename="me.png", content_type="image/png")
    content = await fs_store.get(blob_id)

    assert blob_id.endswith(".png")
    assert content.content_type == "image/png"
    assert content.size_bytes == len(payload)
    assert await read_all(content) == payload


@pytest.mark.asyncio
async def test_put_assigns_a_fresh_id_for_identical_bytes(fs_store) -> None:
    first = await fs_store.put(b"same", filename="a.jpg", content_type="image/jpeg")
    second = await fs_store.put(b"same", filename="a.jpg", content_type="image/jpeg")

    assert first != second
    assert sorted([blob.blob_id async for blob in fs_store.list()]) == sorted([first, second])


@pytest.mark.asyncio
async def test_delete_is_idempotent(fs_store) -> None:
    blob_id = await fs_store.put(b"bytes", filename="x.webp", content_type="image/webp")

    assert await fs_store.delete(blob_id) is True
    assert await fs_store.delete(blob_id) is False
    with pytest.raises(BlobNotFoundError):
        await fs_store.get(blob_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("blob_id", ["../secret.png", "..", "a/b.png", ""])
async def test_ids_outside_the_upload_root_are_not_found(fs_store, blob_id) -> None:
    with pytest.raises(BlobNotFoundError):
        await fs_store.get(blob_id)
    assert await fs_store.delete(blob_id) is False


@pytest.mark.asyncio
async def test_list_skips_foreign_entries_and_reports_file_times(fs_store) -> None:
    blob_id = await fs_store.put(b"avatar", filename="a.png", content_type="image/png")
    (fs_store.root / ".partial").write_bytes(b"tmp")
    (fs_store.root / "nested").mkdir()
    old = (datetime.now(UTC) - timedelta(days=40)).timestamp()
    os.utime(fs_store.root / blob_id, (old, old))

    listed = [blob async for blob in fs_store.list()]

    assert [blob.blob_id for blob in listed] == [blob_id]
    assert listed[0].size_bytes == len(b"avatar")
    assert listed[0].modified_at < datetime.now(UTC) - timedelta(days=39)
    # ctime cannot be back-dated, so the blob still counts as recently touched.
    assert listed[0].last_touched_at > datetime.now(UTC) - timedelta(days=1)


@pytest.mark.asyncio
async def test_list_is_restartable(fs_store) -> None:
    await fs_store.put(b"one", filename="1.png", content_type="image/png")

    first_pass = [blob.blob_id async for blob in fs_store.list()]
    second_pass = [blob.blob_id async for blob in fs_store.list()]

    assert first_pass == second_pass


def test_store_creates_missing_upload_directory(tmp_path) -> None:
    store = FilesystemBlobStore(tmp_path / "deep" / "profile_images")

    assert store.root.is_dir()


@pytest.mark.asyncio
async def test_id_collision_fails_without_touching_the_existing_blob(fs_store, monkeypatch) -> None:
    fixed = SimpleNamespace(hex="c0ffee" * 5)
    monkeypatch.setattr("ecms.services.media.filesystem_store.uuid4", lambda: fixed)
    blob_id = await fs_store.put(b"first", filename="a.png", content_type="image/png")

    with pytest.raises(FileExistsError):
        await fs_store.put(b"second", filename="b.png", content_type="image/png")

    assert await read_all(await fs_store.get(blob_id)) == b"first"
