"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Catalog store
    op.create_table(
        "clips",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("channel", sa.String(64), nullable=False),
        sa.Column("clip_id", sa.String(255), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("view_count", sa.Integer(), server_default="0"),
        sa.Column("game_id", sa.String(64), nullable=True),
        sa.Column("creator_name", sa.String(64), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("video_id", sa.String(64), nullable=True),
        sa.Column("vod_offset", sa.Integer(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("blocked", sa.Boolean(), server_default="false"),
        sa.Column("imported_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("channel", "clip_id", name="uq_clips_channel_clip"),
        sa.UniqueConstraint("channel", "seq", name="uq_clips_channel_seq"),
    )
    op.create_index("ix_clips_channel", "clips", ["channel"])
    op.create_index("ix_clips_game_id", "clips", ["game_id"])

    # Category name cache
    op.create_table(
        "games_cache",
        sa.Column("game_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("box_art_url", sa.Text(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("game_id"),
    )

    # Job ledger
    op.create_table(
        "archive_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("channel", sa.String(64), nullable=False),
        sa.Column("broadcaster_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(32), server_default="pending"),
        sa.Column("total_windows", sa.Integer(), server_default="0"),
        sa.Column("current_window", sa.Integer(), server_default="0"),
        sa.Column("window_days", sa.Integer(), nullable=False),
        sa.Column("clips_found", sa.Integer(), server_default="0"),
        sa.Column("clips_inserted", sa.Integer(), server_default="0"),
        sa.Column("clips_skipped", sa.Integer(), server_default="0"),
        sa.Column("archive_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("archive_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_by", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("channel"),
        sa.CheckConstraint(
            "current_window <= total_windows", name="ck_archive_jobs_window_bound"
        ),
    )
    op.create_index("ix_archive_jobs_status", "archive_jobs", ["status"])
    op.create_index("ix_archive_jobs_updated_at", "archive_jobs", ["updated_at"])

    # Provisioning rows
    op.create_table(
        "streamers",
        sa.Column("channel", sa.String(64), nullable=False),
        sa.Column("streamer_key", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("channel"),
        sa.UniqueConstraint("streamer_key"),
    )

    op.create_table(
        "bot_channels",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("channel", sa.String(64), nullable=False),
        sa.Column("added_by", sa.String(64), nullable=True),
        sa.Column("active", sa.Boolean(), server_default="false"),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("channel"),
    )

    op.create_table(
        "channel_settings",
        sa.Column("channel", sa.String(64), nullable=False),
        sa.Column("last_refresh", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("channel"),
    )
    op.create_index("ix_channel_settings_last_refresh", "channel_settings", ["last_refresh"])


def downgrade() -> None:
    op.drop_table("channel_settings")
    op.drop_table("bot_channels")
    op.drop_table("streamers")
    op.drop_table("archive_jobs")
    op.drop_table("games_cache")
    op.drop_table("clips")
