"""SQLAlchemy ORM models."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Catalog Store
# =============================================================================


class ClipModel(Base):
    """An archived clip.

    ``seq`` is dense per channel. It follows fetch order during ingestion and
    becomes chronological once the finalizer has re-sequenced the channel.
    """

    __tablename__ = "clips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    clip_id: Mapped[str] = mapped_column(String(255), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    view_count: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    game_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    creator_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vod_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    blocked: Mapped[bool] = mapped_column(Boolean, server_default="false", default=False)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("channel", "clip_id", name="uq_clips_channel_clip"),
        UniqueConstraint("channel", "seq", name="uq_clips_channel_seq"),
    )


class GameCacheModel(Base):
    """Category id -> display name cache. Rows are only ever added or renamed."""

    __tablename__ = "games_cache"

    game_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    box_art_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# =============================================================================
# Job Ledger
# =============================================================================


class ArchiveJobModel(Base):
    """One row per channel tracking a full-history archive job."""

    __tablename__ = "archive_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    broadcaster_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), server_default="pending", index=True)
    total_windows: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    current_window: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    clips_found: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    clips_inserted: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    clips_skipped: Mapped[int] = mapped_column(Integer, server_default="0", default=0)
    archive_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    archive_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("current_window <= total_windows", name="ck_archive_jobs_window_bound"),
    )


# =============================================================================
# Channel provisioning (owned by the dashboard and bot subsystems once created)
# =============================================================================


class StreamerModel(Base):
    """Dashboard record for an archived channel."""

    __tablename__ = "streamers"

    channel: Mapped[str] = mapped_column(String(64), primary_key=True)
    streamer_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class BotChannelModel(Base):
    """Chat-bot registration, inactive until the streamer enables it."""

    __tablename__ = "bot_channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    added_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, server_default="false", default=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class ChannelSettingsModel(Base):
    """Per-channel settings row. The pipeline only touches ``last_refresh``."""

    __tablename__ = "channel_settings"

    channel: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_refresh: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
