"""Domain layer - pure types independent of database and transport."""

from clip_archiver.domain.enums import ArchiveStatus, RunOutcome, StartOutcome
from clip_archiver.domain.models import (
    BroadcasterInfo,
    ClipPage,
    ClipRecord,
    GameInfo,
    RefreshResult,
    RunResult,
    StartResult,
    StatusResult,
    SweepReport,
    TimeWindow,
    WriteResult,
)

__all__ = [
    "ArchiveStatus",
    "BroadcasterInfo",
    "ClipPage",
    "ClipRecord",
    "GameInfo",
    "RefreshResult",
    "RunOutcome",
    "RunResult",
    "StartOutcome",
    "StartResult",
    "StatusResult",
    "SweepReport",
    "TimeWindow",
    "WriteResult",
]
