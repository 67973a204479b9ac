from __future__ import annotations

from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.db.models import UserProfile
from ecms.services.media import profiles as profile_store
from ecms.services.media.blob_store import BlobStore
from ecms.services.media.clock import utc_now

INTEGRITY_CHECK_DEFS = (
    (
        "dangling_avatar_pointers",
        "failure",
        "Profiles pointing at a blob the store does not have.",
    ),
    (
        "inconsistent_avatar_flags",
        "failure",
        "Profiles whose default flag disagrees with the stored blob id.",
    ),
    (
        "orphaned_blobs",
        "warning",
        "Blobs no profile references.",
    ),
    (
        "default_avatar_profiles",
        "metric",
        "Profiles showing the default avatar.",
    ),
)


async def _inconsistent_flag_count(db_session: AsyncSession) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(UserProfile)
        .where(
            or_(
                and_(UserProfile.avatar_is_default.is_(True), UserProfile.avatar_blob_id.is_not(None)),
                and_(UserProfile.avatar_is_default.is_(False), UserProfile.avatar_blob_id.is_(None)),
            )
        )
    )
    return int(result.scalar_one() or 0)


async def _default_profile_count(db_session: AsyncSession) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(UserProfile).where(UserProfile.avatar_is_default.is_(True))
    )
    return int(result.scalar_one() or 0)


def _check_row(*, name: str, count: int, severity: str, message: str) -> dict[str, Any]:
    return {
        "name": name,
        "count": int(count),
        "severity": severity,
        "message": message,
    }


def _status_from_issues(*, failures: list[str], warnings: list[str]) -> str:
    if failures:
        return "failed"
    if warnings:
        return "warning"
    return "ok"


async def collect_avatar_integrity_report(
    blob_store: BlobStore,
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[str, Any]:
    """Compare profile pointers with the blob store listing.

    Read-only. Orphans younger than the reclamation window are expected
    and reported as a warning only.
    """
    async with session_factory() as db_session:
        pointers = await profile_store.list_stored_pointers(db_session)
        counts = {
            "inconsistent_avatar_flags": await _inconsistent_flag_count(db_session),
            "default_avatar_profiles": await _default_profile_count(db_session),
        }

    stored_ids = {blob.blob_id async for blob in blob_store.list()}
    referenced_ids = {blob_id for _, blob_id in pointers}
    dangling = [
        {"user_id": user_id, "blob_id": blob_id}
        for user_id, blob_id in pointers
        if blob_id not in stored_ids
    ]
    counts["dangling_avatar_pointers"] = len(dangling)
    counts["orphaned_blobs"] = len(stored_ids - referenced_ids)

    checks = [
        _check_row(name=name, count=counts[name], severity=severity, message=message)
        for name, severity, message in INTEGRITY_CHECK_DEFS
    ]
    failures = [row["name"] for row in checks if row["severity"] == "failure" and row["count"] > 0]
    warnings = [row["name"] for row in checks if row["severity"] == "warning" and row["count"] > 0]
    return {
        "status": _status_from_issues(failures=failures, warnings=warnings),
        "checked_at": utc_now().isoformat(),
        "backend": blob_store.backend_name,
        "failures": failures,
        "warnings": warnings,
        "checks": checks,
        "dangling": dangling,
    }
