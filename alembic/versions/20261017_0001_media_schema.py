"""Create users, profile and avatar blob schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            sa.String(length=32),
            nullable=False,
            server_default=sa.text("'student'"),
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("avatar_blob_id", sa.String(length=64), nullable=True),
        sa.Column(
            "avatar_is_default",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
        ),
        sa.Column("avatar_uploaded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(avatar_is_default AND avatar_blob_id IS NULL AND avatar_uploaded_at IS NULL) "
            "OR (NOT avatar_is_default AND avatar_blob_id IS NOT NULL AND avatar_uploaded_at IS NOT NULL)",
            name="ck_user_profiles_avatar_pointer_consistent",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_user_profiles_user_id_users",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("user_id", name="pk_user_profiles"),
    )
    op.create_index(
        "ix_user_profiles_avatar_blob_id",
        "user_profiles",
        ["avatar_blob_id"],
    )

    op.create_table(
        "media_blobs",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("content_type", sa.String(length=128), nullable=False),
        sa.Column("length", sa.Integer(), nullable=False),
        sa.Column("chunk_size", sa.Integer(), nullable=False),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_media_blobs"),
    )

    op.create_table(
        "media_blob_chunks",
        sa.Column("blob_id", sa.String(length=64), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.ForeignKeyConstraint(
            ["blob_id"],
            ["media_blobs.id"],
            name="fk_media_blob_chunks_blob_id_media_blobs",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("blob_id", "sequence", name="pk_media_blob_chunks"),
    )


def downgrade() -> None:
    op.drop_table("media_blob_chunks")
    op.drop_table("media_blobs")
    op.drop_index("ix_user_profiles_avatar_blob_id", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_table("users")
