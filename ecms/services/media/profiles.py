from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ecms.db.models import UserProfile
from ecms.services.media.clock import as_utc, utc_now
from ecms.services.media.exceptions import ProfileNotFoundError
from ecms.services.media.types import (
    AvatarPointer,
    DefaultAvatar,
    ProfileRecord,
    StoredAvatar,
)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}
_AVATAR_COLUMNS = (
    "avatar_blob_id",
    "avatar_is_default",
    "avatar_uploaded_at",
    "updated_at",
)


def _pointer_from_row(profile: UserProfile) -> AvatarPointer:
    if profile.avatar_is_default or not profile.avatar_blob_id:
        return DefaultAvatar()
    uploaded_at = profile.avatar_uploaded_at or profile.updated_at
    return StoredAvatar(blob_id=profile.avatar_blob_id, uploaded_at=as_utc(uploaded_at))


def to_record(profile: UserProfile) -> ProfileRecord:
    return ProfileRecord(
        user_id=int(profile.user_id),
        pointer=_pointer_from_row(profile),
        created_at=as_utc(profile.created_at),
        updated_at=as_utc(profile.updated_at),
    )


def _pointer_values(pointer: AvatarPointer) -> dict[str, Any]:
    if isinstance(pointer, StoredAvatar):
        return {
            "avatar_blob_id": pointer.blob_id,
            "avatar_is_default": False,
            "avatar_uploaded_at": pointer.uploaded_at,
        }
    return {
        "avatar_blob_id": None,
        "avatar_is_default": True,
        "avatar_uploaded_at": None,
    }


async def get_by_user(db_session: AsyncSession, *, user_id: int) -> ProfileRecord | None:
    result = await db_session.execute(
        select(UserProfile).where(UserProfile.user_id == user_id)
    )
    profile = result.scalar_one_or_none()
    return to_record(profile) if profile is not None else None


async def lock_current_pointer(db_session: AsyncSession, *, user_id: int) -> AvatarPointer | None:
    """Read the pointer under a row lock held until the caller commits.

    SQLite ignores ``FOR UPDATE``; its single-writer transactions already
    serialise the read-then-upsert sequence.
    """
    result = await db_session.execute(
        select(UserProfile)
        .where(UserProfile.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    return _pointer_from_row(profile) if profile is not None else None


async def upsert_avatar(
    db_session: AsyncSession,
    *,
    user_id: int,
    pointer: AvatarPointer,
    now: datetime | None = None,
) -> ProfileRecord:
    """Set the avatar pointer in one INSERT .. ON CONFLICT statement.

    Pointer, default flag and upload time are written together, so no
    reader ever sees them disagree. The caller owns the commit.
    """
    timestamp = now or utc_now()
    dialect_name = db_session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect_name)
    if insert is None:
        raise NotImplementedError(f"Profile upserts are not supported on {dialect_name!r}.")

    statement = insert(UserProfile).values(
        user_id=user_id,
        created_at=timestamp,
        updated_at=timestamp,
        **_pointer_values(pointer),
    )
    statement = statement.on_conflict_do_update(
        index_elements=[UserProfile.user_id],
        set_={column: statement.excluded[column] for column in _AVATAR_COLUMNS},
    ).returning(UserProfile)

    try:
        result = await db_session.scalars(
            statement,
            execution_options={"populate_existing": True},
        )
        profile = result.one()
    except IntegrityError as exc:
        await db_session.rollback()
        raise ProfileNotFoundError(f"User {user_id} does not exist.") from exc
    return to_record(profile)


async def revert_to_default(
    db_session: AsyncSession,
    *,
    user_id: int,
    now: datetime | None = None,
) -> ProfileRecord:
    return await upsert_avatar(db_session, user_id=user_id, pointer=DefaultAvatar(), now=now)


async def list_active_blob_ids(db_session: AsyncSession) -> set[str]:
    result = await db_session.execute(
        select(UserProfile.avatar_blob_id).where(
            UserProfile.avatar_is_default.is_(False),
            UserProfile.avatar_blob_id.is_not(None),
        )
    )
    return {str(blob_id) for blob_id in result.scalars().all() if blob_id}


async def list_stored_pointers(db_session: AsyncSession) -> list[tuple[int, str]]:
    result = await db_session.execute(
        select(UserProfile.user_id, UserProfile.avatar_blob_id)
        .where(
            UserProfile.avatar_is_default.is_(False),
            UserProfile.avatar_blob_id.is_not(None),
        )
        .order_by(UserProfile.user_id.asc())
    )
    return [(int(user_id), str(blob_id)) for user_id, blob_id in result.all()]


async def replace_blob_id_if_current(
    db_session: AsyncSession,
    *,
    user_id: int,
    expected_blob_id: str,
    new_blob_id: str,
) -> bool:
    """Repoint a profile only if it still references ``expected_blob_id``."""
    result = await db_session.execute(
        update(UserProfile)
        .where(
            UserProfile.user_id == user_id,
            UserProfile.avatar_blob_id == expected_blob_id,
        )
        .values(avatar_blob_id=new_blob_id, updated_at=utc_now())
    )
    return bool(result.rowcount)
