from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from ecms.services.media import profiles as profile_store
from ecms.services.media.exceptions import ProfileNotFoundError
from ecms.services.media.types import DefaultAvatar, StoredAvatar

UPLOADED_AT = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_upsert_creates_record_with_stored_pointer(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")

    record = await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
        now=UPLOADED_AT,
    )
    await db_session.commit()

    assert record.blob_id == "blob-a"
    assert record.is_default is False
    assert record.uploaded_at == UPLOADED_AT
    fetched = await profile_store.get_by_user(db_session, user_id=user_id)
    assert fetched == record


@pytest.mark.asyncio
async def test_upsert_replaces_pointer_in_place(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")
    await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
        now=UPLOADED_AT,
    )
    await db_session.commit()

    record = await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-b", uploaded_at=UPLOADED_AT),
    )
    await db_session.commit()

    assert record.blob_id == "blob-b"
    assert record.created_at == UPLOADED_AT
    assert await profile_store.list_active_blob_ids(db_session) == {"blob-b"}


@pytest.mark.asyncio
async def test_revert_clears_pointer_and_sets_default_flag(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")
    await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
    )
    await db_session.commit()

    record = await profile_store.revert_to_default(db_session, user_id=user_id)
    await db_session.commit()

    assert record.pointer == DefaultAvatar()
    assert record.is_default is True
    assert record.blob_id is None
    assert record.uploaded_at is None
    assert await profile_store.list_active_blob_ids(db_session) == set()


@pytest.mark.asyncio
async def test_revert_creates_default_record_when_missing(db_session, make_user) -> None:
    user_id = await make_user("fresh@example.com")

    record = await profile_store.revert_to_default(db_session, user_id=user_id)
    await db_session.commit()

    assert record.is_default is True
    assert await profile_store.get_by_user(db_session, user_id=user_id) == record


@pytest.mark.asyncio
async def test_upsert_for_unknown_user_raises_profile_not_found(db_session) -> None:
    with pytest.raises(ProfileNotFoundError):
        await profile_store.upsert_avatar(
            db_session,
            user_id=999,
            pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
        )


@pytest.mark.asyncio
async def test_default_flag_and_blob_id_cannot_disagree(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")
    await profile_store.revert_to_default(db_session, user_id=user_id)
    await db_session.commit()

    with pytest.raises(IntegrityError):
        await db_session.execute(
            text("UPDATE user_profiles SET avatar_blob_id = 'x' WHERE user_id = :user_id"),
            {"user_id": user_id},
        )


@pytest.mark.asyncio
async def test_lock_current_pointer_reads_existing_pointer(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")
    assert await profile_store.lock_current_pointer(db_session, user_id=user_id) is None

    await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
    )
    await db_session.commit()

    pointer = await profile_store.lock_current_pointer(db_session, user_id=user_id)
    assert isinstance(pointer, StoredAvatar)
    assert pointer.blob_id == "blob-a"


@pytest.mark.asyncio
async def test_replace_blob_id_if_current_is_a_compare_and_swap(db_session, make_user) -> None:
    user_id = await make_user("owner@example.com")
    await profile_store.upsert_avatar(
        db_session,
        user_id=user_id,
        pointer=StoredAvatar(blob_id="blob-a", uploaded_at=UPLOADED_AT),
    )
    await db_session.commit()

    assert await profile_store.replace_blob_id_if_current(
        db_session, user_id=user_id, expected_blob_id="stale", new_blob_id="blob-c"
    ) is False
    assert await profile_store.replace_blob_id_if_current(
        db_session, user_id=user_id, expected_blob_id="blob-a", new_blob_id="blob-b"
    ) is True
    await db_session.commit()

    assert await profile_store.list_stored_pointers(db_session) == [(user_id, "blob-b")]
