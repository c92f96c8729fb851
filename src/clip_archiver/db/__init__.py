"""Database layer."""

from clip_archiver.db.models import (
    ArchiveJobModel,
    Base,
    BotChannelModel,
    ChannelSettingsModel,
    ClipModel,
    GameCacheModel,
    StreamerModel,
)
from clip_archiver.db.session import get_session, get_session_context, init_db

__all__ = [
    "Base",
    "get_session",
    "get_session_context",
    "init_db",
    # Models
    "ArchiveJobModel",
    "BotChannelModel",
    "ChannelSettingsModel",
    "ClipModel",
    "GameCacheModel",
    "StreamerModel",
]
