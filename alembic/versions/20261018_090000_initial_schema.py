"""initial_schema

Revision ID: 3b7e2d41a9c0
Revises:
Create Date: 2026-10-18 09:00:00

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b7e2d41a9c0"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Owner and other key/value settings
    op.create_table(
        "bot_settings",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("value", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "command_grants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_identity", sa.String(), nullable=False),
        sa.Column("command", sa.String(), nullable=False),
        sa.Column("granted_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_identity", "command", name="uq_grant_user_command"),
    )
    op.create_index(
        op.f("ix_command_grants_user_identity"), "command_grants", ["user_identity"], unique=False
    )

    # Games
    op.create_table(
        "game_sessions",
        sa.Column("conversation_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("players", sa.Text(), nullable=False),
        sa.Column("turn_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("state", sa.Text(), nullable=False),
        sa.Column("started_by", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("conversation_id"),
    )

    op.create_table(
        "game_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("conversation_id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("players", sa.Text(), nullable=False),
        sa.Column("winner", sa.String(), nullable=True),
        sa.Column("moves", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_game_history_ended_at", "game_history", ["ended_at"], unique=False)
    op.create_index(
        "idx_game_history_conversation", "game_history", ["conversation_id"], unique=False
    )

    op.create_table(
        "player_stats",
        sa.Column("identity", sa.String(), nullable=False),
        sa.Column("games_started", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_lost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("games_tied", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("by_kind", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("identity"),
    )

    # Media vault
    op.create_table(
        "media_objects",
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("original_name", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("mime_type", sa.String(), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("storage_path", sa.String(), nullable=False),
        sa.Column("relative_path", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("content_hash"),
    )
    op.create_index(
        op.f("ix_media_objects_category"), "media_objects", ["category"], unique=False
    )

    op.create_table(
        "media_references",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("message_id", sa.String(), nullable=False),
        sa.Column("conversation_id", sa.String(), nullable=False),
        sa.Column("sender_identity", sa.String(), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["content_hash"], ["media_objects.content_hash"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("content_hash", "message_id", name="uq_media_ref_message"),
    )
    op.create_index(
        op.f("ix_media_references_content_hash"),
        "media_references",
        ["content_hash"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_media_references_content_hash"), table_name="media_references")
    op.drop_table("media_references")
    op.drop_index(op.f("ix_media_objects_category"), table_name="media_objects")
    op.drop_table("media_objects")
    op.drop_table("player_stats")
    op.drop_index("idx_game_history_conversation", table_name="game_history")
    op.drop_index("idx_game_history_ended_at", table_name="game_history")
    op.drop_table("game_history")
    op.drop_table("game_sessions")
    op.drop_index(op.f("ix_command_grants_user_identity"), table_name="command_grants")
    op.drop_table("command_grants")
    op.drop_table("bot_settings")
