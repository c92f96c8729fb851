"""Stub clips adapter serving clips from memory."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

from clip_archiver.adapters.clips.base import ClipsAdapter
from clip_archiver.domain.models import BroadcasterInfo, ClipPage, ClipRecord, GameInfo
from clip_archiver.logging import get_logger

logger = get_logger(__name__)


class StubClipsAdapter(ClipsAdapter):
    """Stub adapter for local development and tests.

    Clips are filtered by ``created_at`` into the requested window and
    paginated with an offset cursor, the same contract the real API offers.
    Every window request is recorded in ``window_requests``.
    """

    def __init__(
        self,
        users: dict[str, BroadcasterInfo] | None = None,
        clips: dict[str, list[ClipRecord]] | None = None,
        games: dict[str, GameInfo] | None = None,
        page_size: int = 100,
    ) -> None:
        self.users = users or {}
        self.clips = clips or {}
        self.games = games or {}
        self.page_size = page_size
        self.window_requests: list[tuple[str, datetime, datetime]] = []
        self.game_requests: list[list[str]] = []
        self.token_refreshes = 0

    @property
    def name(self) -> str:
        return "stub"

    def add_channel(
        self,
        login: str,
        broadcaster_id: str,
        created_at: datetime | None = None,
        clips: list[ClipRecord] | None = None,
    ) -> BroadcasterInfo:
        """Register a channel and its clips."""
        info = BroadcasterInfo(
            broadcaster_id=broadcaster_id,
            login=login,
            display_name=login,
            created_at=created_at or datetime(2020, 1, 1, tzinfo=UTC),
        )
        self.users[login] = info
        self.clips.setdefault(broadcaster_id, []).extend(clips or [])
        return info

    async def get_user(self, login: str) -> BroadcasterInfo | None:
        logger.debug("stub_get_user", login=login)
        return self.users.get(login)

    async def iter_window_pages(
        self,
        broadcaster_id: str,
        started_at: datetime,
        ended_at: datetime,
    ) -> AsyncIterator[ClipPage]:
        self.window_requests.append((broadcaster_id, started_at, ended_at))
        matching = [
            clip
            for clip in self.clips.get(broadcaster_id, [])
            if clip.created_at is not None and started_at <= clip.created_at < ended_at
        ]

        for offset in range(0, len(matching), self.page_size):
            next_offset = offset + self.page_size
            cursor = str(next_offset) if next_offset < len(matching) else None
            yield ClipPage(records=matching[offset:next_offset], cursor=cursor)

    async def get_games(self, game_ids: list[str]) -> dict[str, GameInfo]:
        self.game_requests.append(list(game_ids))
        return {gid: self.games[gid] for gid in game_ids if gid in self.games}

    async def refresh_token(self) -> None:
        self.token_refreshes += 1
