from __future__ import annotations

import asyncio
import logging

from ecms.logging_utils import structured_log
from ecms.services.media.blob_store import BlobStore

logger = logging.getLogger(__name__)


class BlobCleanupDispatcher:
    """Run superseded-blob deletions as background tasks.

    Callers never await the deletion; outcomes are logged and counted.
    ``drain`` waits for outstanding tasks and is called on shutdown.
    """

    def __init__(self, blob_store: BlobStore) -> None:
        self._blob_store = blob_store
        self._tasks: set[asyncio.Task[bool]] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, blob_id: str, *, user_id: int | None, reason: str) -> asyncio.Task[bool]:
        task = asyncio.create_task(
            self._delete(blob_id, user_id=user_id, reason=reason),
            name=f"ecms-blob-cleanup-{blob_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        structured_log(
            logger,
            "debug",
            "media.blob_cleanup_scheduled",
            blob_id=blob_id,
            user_id=user_id,
            reason=reason,
        )
        return task

    async def _delete(self, blob_id: str, *, user_id: int | None, reason: str) -> bool:
        try:
            deleted = await self._blob_store.delete(blob_id)
        except Exception:
            self.failed += 1
            logger.exception(
                "media.blob_cleanup_failed",
                extra={
                    "blob_id": blob_id,
                    "user_id": user_id,
                    "reason": reason,
                },
            )
            return False
        self.completed += 1
        structured_log(
            logger,
            "info",
            "media.blob_cleanup_completed",
            blob_id=blob_id,
            user_id=user_id,
            reason=reason,
            deleted=deleted,
        )
        return deleted

    async def drain(self) -> None:
        if not self._tasks:
            return
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
