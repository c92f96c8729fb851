"""Job Ledger access.

The ledger row is the single source of truth for resuming a channel's
archive job: any invocation can be killed and a later one picks up from
``current_window`` with no other coordination. Functions here mutate the
row; the caller owns the commit unless a docstring says otherwise, so that
a checkpoint lands in the same transaction as the window it records.
"""

import re
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from clip_archiver.db.models import ArchiveJobModel
from clip_archiver.domain.enums import ACTIVE_STATUSES, ArchiveStatus
from clip_archiver.domain.models import WriteResult, as_utc
from clip_archiver.logging import get_logger

logger = get_logger(__name__)

ERROR_MESSAGE_LIMIT = 500

_CHANNEL_PATTERN = re.compile(r"[^a-z0-9_]")


class ArchiveJobNotFoundError(Exception):
    """Raised when a channel has no archive job."""

    pass


def normalize_channel(raw: str | None) -> str:
    """Lower-case a channel handle and strip characters handles cannot contain."""
    return _CHANNEL_PATTERN.sub("", (raw or "").strip().lower())


def get_job(session: Session, channel: str) -> ArchiveJobModel | None:
    """Get the archive job for a channel, if any."""
    return session.execute(
        select(ArchiveJobModel).where(ArchiveJobModel.channel == channel)
    ).scalar_one_or_none()


def require_job(session: Session, channel: str) -> ArchiveJobModel:
    """Get the archive job for a channel.

    Raises:
        ArchiveJobNotFoundError: If the channel has no job.
    """
    job = get_job(session, channel)
    if job is None:
        raise ArchiveJobNotFoundError(f"No archive job for channel '{channel}'")
    return job


def is_live(job: ArchiveJobModel, now: datetime, liveness: timedelta) -> bool:
    """Whether the job is running and has checkpointed within the liveness window."""
    updated_at = as_utc(job.updated_at)
    return (
        job.status in ACTIVE_STATUSES
        and updated_at is not None
        and updated_at > now - liveness
    )


def count_live_jobs(
    session: Session,
    now: datetime,
    liveness: timedelta,
    exclude_channel: str | None = None,
) -> int:
    """Count running jobs with a recent checkpoint, across all channels.

    This is an advisory admission check, not a lock: two concurrent callers
    may both see room for one more job.
    """
    query = select(func.count(ArchiveJobModel.id)).where(
        ArchiveJobModel.status.in_([str(s) for s in ACTIVE_STATUSES]),
        ArchiveJobModel.updated_at > now - liveness,
    )
    if exclude_channel:
        query = query.where(ArchiveJobModel.channel != exclude_channel)
    return int(session.execute(query).scalar_one())


def progress_percent(job: ArchiveJobModel) -> int:
    """Share of planned windows already committed."""
    if not job.total_windows:
        return 100 if job.status == ArchiveStatus.COMPLETE else 0
    return round(job.current_window / job.total_windows * 100)


def job_to_dict(job: ArchiveJobModel) -> dict[str, Any]:
    """Serialize a ledger row for API responses."""

    def _iso(value: datetime | None) -> str | None:
        value = as_utc(value)
        return value.isoformat() if value else None

    return {
        "channel": job.channel,
        "broadcaster_id": job.broadcaster_id,
        "status": job.status,
        "total_windows": job.total_windows,
        "current_window": job.current_window,
        "window_days": job.window_days,
        "clips_found": job.clips_found,
        "clips_inserted": job.clips_inserted,
        "clips_skipped": job.clips_skipped,
        "archive_start": _iso(job.archive_start),
        "archive_end": _iso(job.archive_end),
        "started_by": job.started_by,
        "error_message": job.error_message,
        "progress_percent": progress_percent(job),
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
        "completed_at": _iso(job.completed_at),
    }


def save_plan(
    session: Session,
    channel: str,
    *,
    broadcaster_id: str,
    total_windows: int,
    window_days: int,
    archive_start: datetime,
    archive_end: datetime,
    now: datetime,
    started_by: str | None = None,
) -> ArchiveJobModel:
    """Create the job, or re-plan an existing one, and set it to pending.

    An existing job keeps its ``current_window`` and cumulative counts so a
    re-requested job resumes instead of restarting.
    """
    job = get_job(session, channel)
    if job is None:
        job = ArchiveJobModel(
            channel=channel,
            current_window=0,
            clips_found=0,
            clips_inserted=0,
            clips_skipped=0,
            created_at=now,
        )
        session.add(job)

    job.broadcaster_id = broadcaster_id
    job.status = ArchiveStatus.PENDING
    job.total_windows = total_windows
    job.window_days = window_days
    job.archive_start = archive_start
    job.archive_end = archive_end
    job.current_window = min(job.current_window or 0, total_windows)
    job.started_by = started_by
    job.error_message = None
    job.completed_at = None
    job.updated_at = now
    return job


def reopen(
    session: Session,
    job: ArchiveJobModel,
    now: datetime,
    started_by: str | None = None,
) -> ArchiveJobModel:
    """Set a job whose windows are all committed back to pending, keeping its plan.

    The next run goes straight to finalization. Does not commit.
    """
    job.status = ArchiveStatus.PENDING
    job.error_message = None
    job.completed_at = None
    job.updated_at = now
    if started_by is not None:
        job.started_by = started_by
    return job


def set_status(
    session: Session,
    job: ArchiveJobModel,
    status: ArchiveStatus,
    now: datetime,
) -> None:
    """Flip the job's status and commit."""
    job.status = status
    job.updated_at = now
    if status == ArchiveStatus.COMPLETE:
        job.completed_at = now
        job.error_message = None
    session.commit()
    logger.info("archive_job_status", channel=job.channel, status=str(status))


def record_checkpoint(
    session: Session,
    job: ArchiveJobModel,
    window_index: int,
    counts: WriteResult,
    now: datetime,
) -> bool:
    """Advance the resume pointer past ``window_index`` and add the window's counts.

    The update only applies while the stored pointer still equals
    ``window_index``; another runner that moved it first wins and this call
    returns False. Does not commit: the caller commits together with the
    window's rows.
    """
    updated = session.execute(
        update(ArchiveJobModel)
        .where(
            ArchiveJobModel.id == job.id,
            ArchiveJobModel.current_window == window_index,
        )
        .values(
            current_window=window_index + 1,
            clips_found=ArchiveJobModel.clips_found + counts.seen,
            clips_inserted=ArchiveJobModel.clips_inserted + counts.inserted,
            clips_skipped=ArchiveJobModel.clips_skipped + counts.skipped,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    session.expire(job)
    return updated.rowcount == 1


def mark_failed(session: Session, channel: str, message: str, now: datetime) -> None:
    """Discard uncommitted work and flip the job to failed, in one commit.

    The resume pointer is whatever was last committed.
    """
    session.rollback()
    job = get_job(session, channel)
    if job is None:
        return
    job.status = ArchiveStatus.FAILED
    job.error_message = message[:ERROR_MESSAGE_LIMIT]
    job.updated_at = now
    session.commit()
    logger.error(
        "archive_job_failed",
        channel=channel,
        current_window=job.current_window,
        total_windows=job.total_windows,
        error=message,
    )
