"""Domain models - pure Python classes independent of database."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from clip_archiver.domain.enums import ArchiveStatus, RunOutcome, StartOutcome


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as returned by the clips API."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def format_timestamp(value: datetime) -> str:
    """Format a timestamp the way the clips API expects it in query parameters."""
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class TimeWindow:
    """Half-open time range ``[start, end)`` fetched as one unit."""

    index: int
    start: datetime
    end: datetime


@dataclass
class ClipRecord:
    """A clip as returned by the external API."""

    clip_id: str
    title: str = ""
    duration: float | None = None
    created_at: datetime | None = None
    view_count: int = 0
    game_id: str | None = None
    creator_name: str | None = None
    thumbnail_url: str | None = None
    video_id: str | None = None
    vod_offset: int | None = None
    url: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "ClipRecord":
        """Build a record from one element of the clips API ``data`` array.

        Raises:
            ValueError: If the payload has no clip id or unparseable fields.
        """
        clip_id = payload.get("id")
        if not clip_id:
            raise ValueError("clip payload has no id")

        duration = payload.get("duration")
        vod_offset = payload.get("vod_offset")

        return cls(
            clip_id=str(clip_id),
            title=payload.get("title") or "",
            duration=float(duration) if duration is not None else None,
            created_at=parse_timestamp(payload.get("created_at")),
            view_count=int(payload.get("view_count") or 0),
            game_id=payload.get("game_id") or None,
            creator_name=payload.get("creator_name") or None,
            thumbnail_url=payload.get("thumbnail_url") or None,
            video_id=payload.get("video_id") or None,
            vod_offset=int(vod_offset) if vod_offset is not None else None,
            url=payload.get("url") or None,
        )


@dataclass
class ClipPage:
    """One page of clips plus the cursor for the next page."""

    records: list[ClipRecord]
    cursor: str | None = None
    malformed: int = 0


@dataclass
class BroadcasterInfo:
    """Channel lookup result."""

    broadcaster_id: str
    login: str
    display_name: str | None = None
    created_at: datetime | None = None


@dataclass
class GameInfo:
    """Category display metadata."""

    game_id: str
    name: str
    box_art_url: str | None = None


@dataclass
class WriteResult:
    """Counts from one Upsert Writer call."""

    seen: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def __iadd__(self, other: "WriteResult") -> "WriteResult":
        self.seen += other.seen
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        return self


@dataclass
class StartResult:
    """Outcome of ``start``."""

    status: StartOutcome
    job: dict[str, Any] | None = None
    clip_count: int | None = None
    message: str | None = None


@dataclass
class StatusResult:
    """Outcome of ``status``."""

    status: ArchiveStatus | str
    progress_percent: int = 0
    job: dict[str, Any] | None = None
    total_clips: int | None = None


@dataclass
class RunResult:
    """Outcome of one ``run_to_budget`` invocation."""

    outcome: RunOutcome
    windows_processed: int = 0
    current_window: int = 0
    total_windows: int = 0
    counts: WriteResult = field(default_factory=WriteResult)
    error: str | None = None


@dataclass
class RefreshResult:
    """Outcome of an incremental refresh for one channel."""

    channel: str
    new_clips: int = 0
    windows: int = 0
    windows_processed: int = 0
    errors: int = 0
    games_resolved: int = 0
    fetch_from: datetime | None = None
    skipped: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class SweepReport:
    """Summary of one scheduler tick."""

    channels_checked: int = 0
    results: list[RefreshResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    unreached: list[str] = field(default_factory=list)
    deferred: bool = False
    runtime_seconds: float = 0.0

    @property
    def channels_refreshed(self) -> int:
        return len(self.results)
