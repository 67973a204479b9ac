from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.logging_utils import structured_log
from ecms.services.media.application import AvatarService
from ecms.services.media.blob_store import BlobStore
from ecms.services.media.cleanup import BlobCleanupDispatcher
from ecms.services.media.database_store import DatabaseBlobStore
from ecms.services.media.filesystem_store import FilesystemBlobStore
from ecms.services.media.reclamation import ReclamationJob
from ecms.settings import Settings

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("filesystem", "database")


def build_blob_store(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    backend: str | None = None,
) -> BlobStore:
    name = (backend or settings.media_storage_backend or "").strip().lower()
    if name == "filesystem":
        return FilesystemBlobStore(settings.media_upload_dir)
    if name == "database":
        return DatabaseBlobStore(
            session_factory,
            chunk_size=settings.media_chunk_size_bytes,
        )
    raise ValueError(
        f"Unknown media storage backend {name!r}; expected one of {', '.join(SUPPORTED_BACKENDS)}."
    )


class MediaRuntime:
    """Blob store, avatar service and reclamation job for one app lifetime."""

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        session_factory: async_sessionmaker[AsyncSession],
        default_avatar_url: str,
        reclamation_enabled: bool = True,
        reclamation_interval_seconds: float = 6 * 60 * 60,
        reclamation_retention_days: float = 30.0,
    ) -> None:
        self.blob_store = blob_store
        self.cleanup = BlobCleanupDispatcher(blob_store)
        self.avatar_service = AvatarService(
            blob_store=blob_store,
            default_avatar_url=default_avatar_url,
            cleanup=self.cleanup,
        )
        self.reclamation_job = ReclamationJob(
            blob_store=blob_store,
            session_factory=session_factory,
            enabled=reclamation_enabled,
            interval_seconds=reclamation_interval_seconds,
            retention_days=reclamation_retention_days,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> MediaRuntime:
        return cls(
            blob_store=build_blob_store(settings, session_factory),
            session_factory=session_factory,
            default_avatar_url=settings.media_default_avatar_url,
            reclamation_enabled=settings.media_reclamation_enabled,
            reclamation_interval_seconds=settings.media_reclamation_interval_seconds,
            reclamation_retention_days=settings.media_reclamation_retention_days,
        )

    async def start(self) -> None:
        structured_log(logger, "info", "media.runtime_started", backend=self.blob_store.backend_name)
        await self.reclamation_job.start()

    async def stop(self) -> None:
        await self.reclamation_job.stop()
        await self.cleanup.drain()
        await self.blob_store.close()
        structured_log(
            logger,
            "info",
            "media.runtime_stopped",
            backend=self.blob_store.backend_name,
            cleanup_completed=self.cleanup.completed,
            cleanup_failed=self.cleanup.failed,
        )
