"""Clips API adapters."""

from clip_archiver.adapters.clips.base import (
    ClipsAdapter,
    ClipsAPIError,
    UpstreamNotConfiguredError,
    UpstreamPermanentError,
    UpstreamTransientError,
)
from clip_archiver.adapters.clips.stub import StubClipsAdapter
from clip_archiver.adapters.clips.twitch import TwitchClipsAdapter
from clip_archiver.config import settings


def get_clips_adapter() -> ClipsAdapter:
    """Get the configured clips adapter.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    provider = settings.clips_provider.lower()
    if provider == "twitch":
        return TwitchClipsAdapter()
    if provider == "stub":
        return StubClipsAdapter()
    raise ValueError(f"Unknown clips provider: {settings.clips_provider}")


__all__ = [
    "ClipsAPIError",
    "ClipsAdapter",
    "StubClipsAdapter",
    "TwitchClipsAdapter",
    "UpstreamNotConfiguredError",
    "UpstreamPermanentError",
    "UpstreamTransientError",
    "get_clips_adapter",
]
