from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ecms.db.models import User, UserProfile
from ecms.services.media import profiles as profile_store
from ecms.services.media.blob_store import read_all
from ecms.services.media.database_store import DatabaseBlobStore
from ecms.services.media.exceptions import ProfileNotFoundError
from ecms.services.media.types import StoredAvatar

UPLOADED_AT = datetime(2026, 10, 1, tzinfo=UTC)


async def _insert_user(session_factory: async_sessionmaker[AsyncSession], email: str) -> int:
    async with session_factory() as session:
        user = User(email=email, role="student")
        session.add(user)
        await session.commit()
        return int(user.id)


@pytest.mark.integration
@pytest.mark.db
@pytest.mark.asyncio
async def test_upsert_and_revert_round_trip_on_postgres(
    pg_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user_id = await _insert_user(pg_session_factory, "pg-owner@example.com")

    async with pg_session_factory() as session:
        created = await profile_store.upsert_avatar(
            session,
            user_id=user_id,
            pointer=StoredAvatar(blob_id="abc123.png", uploaded_at=UPLOADED_AT),
        )
        await session.commit()
    async with pg_session_factory() as session:
        reverted = await profile_store.revert_to_default(session, user_id=user_id)
        await session.commit()

    assert created.pointer == StoredAvatar(blob_id="abc123.png", uploaded_at=UPLOADED_AT)
    assert reverted.is_default is True
    assert reverted.created_at == created.created_at


@pytest.mark.integration
@pytest.mark.db
@pytest.mark.asyncio
async def test_upsert_for_unknown_user_is_profile_not_found(
    pg_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    async with pg_session_factory() as session:
        with pytest.raises(ProfileNotFoundError):
            await profile_store.revert_to_default(session, user_id=999_999)


@pytest.mark.integration
@pytest.mark.db
@pytest.mark.asyncio
async def test_check_constraint_rejects_default_profile_with_blob(
    pg_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user_id = await _insert_user(pg_session_factory, "pg-check@example.com")

    async with pg_session_factory() as session:
        session.add(UserProfile(user_id=user_id, avatar_blob_id="x.png", avatar_is_default=True))
        with pytest.raises(IntegrityError):
            await session.commit()


@pytest.mark.integration
@pytest.mark.db
@pytest.mark.asyncio
async def test_database_blob_store_streams_chunks_on_postgres(
    pg_session_factory: async_sessionmaker[AsyncSession],
) -> None:
    store = DatabaseBlobStore(pg_session_factory, chunk_size=3)
    payload = b"0123456789"

    blob_id = await store.put(payload, filename="a.png", content_type="image/png")
    content = await store.get(blob_id)

    assert await read_all(content) == payload
    assert content.size_bytes == len(payload)
    assert await store.delete(blob_id) is True
    assert [blob async for blob in store.list()] == []
