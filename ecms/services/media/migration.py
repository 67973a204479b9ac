"""One-time copy of referenced avatars from one blob backend to another."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.logging_utils import structured_log
from ecms.services.media import profiles as profile_store
from ecms.services.media.blob_store import BlobStore, read_all
from ecms.services.media.exceptions import BlobNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    source_backend: str
    target_backend: str
    dry_run: bool
    copied: int = 0
    repointed: int = 0
    missing: list[int] = field(default_factory=list)
    superseded: int = 0
    failed: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "source_backend": self.source_backend,
            "target_backend": self.target_backend,
            "dry_run": self.dry_run,
            "copied": self.copied,
            "repointed": self.repointed,
            "missing_user_ids": list(self.missing),
            "superseded": self.superseded,
            "failed_user_ids": list(self.failed),
        }


def _record_missing(report: MigrationReport, user_id: int, blob_id: str) -> None:
    report.missing.append(user_id)
    structured_log(logger, "warning", "media.migration_source_missing", user_id=user_id, blob_id=blob_id)


async def migrate_avatar_blobs(
    source: BlobStore,
    target: BlobStore,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    dry_run: bool = False,
    delete_source: bool = False,
) -> MigrationReport:
    """Copy every referenced avatar into ``target`` and repoint its profile.

    Each profile is repointed with a compare-and-swap on the old blob id,
    so an avatar changed mid-migration keeps its newer value and the copy
    is discarded. Unreferenced blobs are left for the reclamation job.
    """
    report = MigrationReport(
        source_backend=source.backend_name,
        target_backend=target.backend_name,
        dry_run=dry_run,
    )
    async with session_factory() as db_session:
        pointers = await profile_store.list_stored_pointers(db_session)

    if dry_run:
        # Existence only; nothing is opened or copied.
        available = {blob.blob_id async for blob in source.list()}
        for user_id, blob_id in pointers:
            if blob_id not in available:
                _record_missing(report, user_id, blob_id)
        structured_log(logger, "info", "media.migration_completed", **report.as_dict())
        return report

    for user_id, blob_id in pointers:
        try:
            content = await source.get(blob_id)
        except BlobNotFoundError:
            _record_missing(report, user_id, blob_id)
            continue

        try:
            data = await read_all(content)
            new_blob_id = await target.put(
                data,
                filename=blob_id,
                content_type=content.content_type,
                metadata={"user_id": user_id, "migrated_from": blob_id},
            )
        except Exception:
            report.failed.append(user_id)
            logger.exception("media.migration_copy_failed", extra={"user_id": user_id, "blob_id": blob_id})
            continue
        report.copied += 1

        async with session_factory() as db_session:
            swapped = await profile_store.replace_blob_id_if_current(
                db_session,
                user_id=user_id,
                expected_blob_id=blob_id,
                new_blob_id=new_blob_id,
            )
            await db_session.commit()

        if not swapped:
            report.superseded += 1
            await target.delete(new_blob_id)
            continue
        report.repointed += 1
        if delete_source:
            await source.delete(blob_id)

    structured_log(logger, "info", "media.migration_completed", **report.as_dict())
    return report
