from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
import logging
import os

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.logging_utils import structured_log
from ecms.services.media import profiles as profile_store
from ecms.services.media.blob_store import BlobStore
from ecms.services.media.clock import utc_now
from ecms.services.media.constants import (
    DEFAULT_RECLAMATION_INTERVAL_SECONDS,
    DEFAULT_RECLAMATION_RETENTION_DAYS,
    MIN_RECLAMATION_INTERVAL_SECONDS,
)
from ecms.services.media.exceptions import ReclamationError
from ecms.services.media.types import ReclamationResult

logger = logging.getLogger(__name__)

TEST_APP_ENVS = {"test", "testing"}


def running_in_test_environment() -> bool:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return True
    return (os.getenv("APP_ENV") or "").strip().lower() in TEST_APP_ENVS


async def reclaim_orphaned_blobs(
    blob_store: BlobStore,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    retention: timedelta,
    now: datetime | None = None,
    log: logging.Logger = logger,
) -> ReclamationResult:
    """Delete blobs no profile references once they are older than ``retention``.

    Referenced blobs are never touched, whatever their age. An unreferenced
    blob younger than the window is kept so an upload that has written its
    blob but not yet swapped the pointer is not swept from under it. Age
    is measured from the later of creation and modification time.
    """
    cutoff = (now or utc_now()) - retention
    async with session_factory() as db_session:
        active_ids = await profile_store.list_active_blob_ids(db_session)

    deleted = kept = failed = total = 0
    async for blob in blob_store.list():
        total += 1
        if blob.blob_id in active_ids or blob.last_touched_at >= cutoff:
            kept += 1
            continue
        try:
            await blob_store.delete(blob.blob_id)
        except Exception as exc:
            failed += 1
            error = ReclamationError(blob.blob_id, exc)
            log.warning(
                "media.reclamation_delete_failed",
                extra={"blob_id": blob.blob_id, "error": str(error)},
                exc_info=exc,
            )
            continue
        deleted += 1

    return ReclamationResult(
        deleted=deleted,
        kept=kept,
        failed=failed,
        total=total,
        cutoff=cutoff,
    )


class ReclamationJob:
    def __init__(
        self,
        *,
        blob_store: BlobStore,
        session_factory: async_sessionmaker[AsyncSession],
        enabled: bool = True,
        interval_seconds: float = DEFAULT_RECLAMATION_INTERVAL_SECONDS,
        retention_days: float = DEFAULT_RECLAMATION_RETENTION_DAYS,
        log: logging.Logger | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._session_factory = session_factory
        self._enabled = enabled
        self._interval_seconds = max(float(MIN_RECLAMATION_INTERVAL_SECONDS), float(interval_seconds))
        self._retention = timedelta(days=max(0.0, float(retention_days)))
        self._logger = log or logger
        self._task: asyncio.Task[None] | None = None
        self.last_result: ReclamationResult | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def retention(self) -> timedelta:
        return self._retention

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if not self._enabled:
            structured_log(self._logger, "info", "media.reclamation_disabled")
            return
        if running_in_test_environment():
            structured_log(self._logger, "info", "media.reclamation_skipped_test_environment")
            return
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run_loop(), name="ecms-avatar-reclamation")
        structured_log(
            self._logger,
            "info",
            "media.reclamation_started",
            interval_seconds=self._interval_seconds,
            retention_days=self._retention.total_seconds() / 86_400,
            backend=self._blob_store.backend_name,
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        structured_log(self._logger, "info", "media.reclamation_stopped")

    async def run_once(self, *, now: datetime | None = None) -> ReclamationResult:
        result = await reclaim_orphaned_blobs(
            self._blob_store,
            self._session_factory,
            retention=self._retention,
            now=now,
            log=self._logger,
        )
        self.last_result = result
        structured_log(
            self._logger,
            "info",
            "media.reclamation_completed",
            backend=self._blob_store.backend_name,
            retention_days=self._retention.total_seconds() / 86_400,
            **result.as_log_fields(),
        )
        return result

    async def _run_loop(self) -> None:
        # First pass runs immediately at startup.
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                self._logger.exception("media.reclamation_failed")
            await asyncio.sleep(self._interval_seconds)
