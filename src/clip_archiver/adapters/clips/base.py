"""Base interface for clips API adapters."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime

from clip_archiver.domain.models import BroadcasterInfo, ClipPage, ClipRecord, GameInfo


class ClipsAPIError(Exception):
    """Raised when the clips API cannot serve a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamTransientError(ClipsAPIError):
    """Rate limiting or server errors that outlasted every retry attempt."""


class UpstreamPermanentError(ClipsAPIError):
    """A non-retryable error: 4xx other than 429, or a malformed response."""


class UpstreamNotConfiguredError(ClipsAPIError):
    """API credentials are missing."""


class ClipsAdapter(ABC):
    """Abstract base class for clips API adapters.

    Implementations:
    - StubClipsAdapter: Serves clips from memory for development and tests
    - TwitchClipsAdapter: Fetches from the Twitch Helix API
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...

    @abstractmethod
    async def get_user(self, login: str) -> BroadcasterInfo | None:
        """Look up a channel by handle.

        Args:
            login: Normalised channel handle.

        Returns:
            BroadcasterInfo, or None if the channel does not exist.
        """
        ...

    @abstractmethod
    def iter_window_pages(
        self,
        broadcaster_id: str,
        started_at: datetime,
        ended_at: datetime,
    ) -> AsyncIterator[ClipPage]:
        """Page through every clip created inside ``[started_at, ended_at)``.

        Raises:
            ClipsAPIError: When a page cannot be fetched. Pages already
                yielded remain valid; the window as a whole is not.
        """
        ...

    @abstractmethod
    async def get_games(self, game_ids: list[str]) -> dict[str, GameInfo]:
        """Resolve up to 100 category ids to display metadata.

        Unknown ids are simply absent from the result.
        """
        ...

    async def fetch_window(
        self,
        broadcaster_id: str,
        started_at: datetime,
        ended_at: datetime,
    ) -> AsyncIterator[ClipRecord]:
        """Lazily yield the clips of one window, record by record."""
        async for page in self.iter_window_pages(broadcaster_id, started_at, ended_at):
            for record in page.records:
                yield record

    async def refresh_token(self) -> None:
        """Force a new bearer token. No-op for adapters without authentication."""
        return None

    async def health_check(self) -> bool:
        """Check if the clips API is reachable and authenticated."""
        return True

    async def close(self) -> None:
        """Release network resources."""
        return None
