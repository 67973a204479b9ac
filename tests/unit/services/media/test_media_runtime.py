from __future__ import annotations

from dataclasses import replace

import pytest

from ecms.services.media.database_store import DatabaseBlobStore
from ecms.services.media.filesystem_store import FilesystemBlobStore
from ecms.services.media.runtime import MediaRuntime, build_blob_store
from ecms.settings import settings


def test_build_blob_store_selects_backend(session_factory, tmp_path) -> None:
    configured = replace(settings, media_upload_dir=str(tmp_path / "uploads"), media_chunk_size_bytes=1024)

    filesystem = build_blob_store(configured, session_factory, backend="filesystem")
    database = build_blob_store(configured, session_factory, backend=" Database ")

    assert isinstance(filesystem, FilesystemBlobStore)
    assert filesystem.root.name == "uploads"
    assert isinstance(database, DatabaseBlobStore)
    assert database.chunk_size == 1024


def test_build_blob_store_rejects_unknown_backend(session_factory) -> None:
    with pytest.raises(ValueError, match="s3"):
        build_blob_store(settings, session_factory, backend="s3")


@pytest.mark.asyncio
async def test_runtime_stop_drains_pending_cleanup(fs_store, session_factory) -> None:
    runtime = MediaRuntime(
        blob_store=fs_store,
        session_factory=session_factory,
        default_avatar_url="/static/default.png",
        reclamation_enabled=False,
    )
    blob_id = await fs_store.put(b"bytes", filename="a.png", content_type="image/png")

    await runtime.start()
    runtime.cleanup.schedule(blob_id, user_id=None, reason="test")
    await runtime.stop()

    assert runtime.cleanup.pending == 0
    assert runtime.cleanup.completed == 1
    assert runtime.reclamation_job.running is False
    assert [blob async for blob in fs_store.list()] == []
