"""Archive job endpoints."""

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, Field

from clip_archiver.adapters.clips import ClipsAPIError
from clip_archiver.api.deps import ClipsAdapterDep, SessionDep
from clip_archiver.config import settings
from clip_archiver.domain.enums import StartOutcome
from clip_archiver.jobs.archive_tasks import process_channel_task, refresh_channel_task
from clip_archiver.logging import get_logger
from clip_archiver.services import ledger
from clip_archiver.services.archiver import ArchiveController

router = APIRouter(prefix="/archive", tags=["Archive"])
logger = get_logger(__name__)

_START_STATUS_CODES = {
    StartOutcome.STARTED: status.HTTP_202_ACCEPTED,
    StartOutcome.ALREADY_ARCHIVED: status.HTTP_200_OK,
    StartOutcome.IN_PROGRESS: status.HTTP_200_OK,
    StartOutcome.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    StartOutcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class JobResponse(BaseModel):
    """Response when a job is enqueued."""

    task_id: str | None = None
    status: str
    message: str


class StartRequest(BaseModel):
    """Optional details about who requested the archive."""

    started_by: str | None = Field(None, max_length=64)


class StartResponse(BaseModel):
    """Outcome of a start request."""

    status: str
    message: str | None = None
    job: dict[str, Any] | None = None
    clip_count: int | None = None
    task_id: str | None = None


class StatusResponse(BaseModel):
    """Job status and progress for a channel."""

    status: str
    progress_percent: int
    job: dict[str, Any] | None = None
    total_clips: int | None = None


def _require_channel(channel: str) -> str:
    normalized = ledger.normalize_channel(channel)
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid channel name",
        )
    return normalized


@router.post(
    "/{channel}/start",
    response_model=StartResponse,
    summary="Start archive",
    description="Plan a full-history archive for a channel and enqueue its first slice.",
)
async def start_archive(
    channel: str,
    response: Response,
    session: SessionDep,
    adapter: ClipsAdapterDep,
    request: StartRequest | None = None,
) -> StartResponse:
    """Start (or resume) a channel's archive job."""
    channel = _require_channel(channel)
    controller = ArchiveController(session, adapter)

    try:
        result = await controller.start(
            channel, started_by=request.started_by if request else None
        )
    except ClipsAPIError as e:
        logger.error("archive_start_upstream_error", channel=channel, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Clips API error: {e}",
        ) from e

    task_id = None
    if result.status == StartOutcome.STARTED:
        task = process_channel_task.delay(channel)
        task_id = task.id
        logger.info("archive_start_enqueued", channel=channel, task_id=task_id)

    response.status_code = _START_STATUS_CODES[result.status]
    return StartResponse(
        status=str(result.status),
        message=result.message,
        job=result.job,
        clip_count=result.clip_count,
        task_id=task_id,
    )


@router.get(
    "/{channel}/status",
    response_model=StatusResponse,
    summary="Archive status",
    description="Status and progress of a channel's archive job.",
)
async def archive_status(
    channel: str,
    session: SessionDep,
    adapter: ClipsAdapterDep,
) -> StatusResponse:
    """Poll a channel's archive job."""
    channel = _require_channel(channel)
    result = ArchiveController(session, adapter).status(channel)

    return StatusResponse(
        status=str(result.status),
        progress_percent=result.progress_percent,
        job=result.job,
        total_clips=result.total_clips,
    )


@router.post(
    "/{channel}/process",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Process archive",
    description="Enqueue a bounded processing slice for a channel's archive job.",
)
async def process_archive(channel: str, response: Response, session: SessionDep) -> JobResponse:
    """Run the next slice of a channel's archive job in the background.

    A job that is already being processed is left to its running chain.
    """
    channel = _require_channel(channel)
    job = ledger.get_job(session, channel)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No archive job for channel '{channel}'",
        )

    liveness = timedelta(seconds=settings.archive_liveness_seconds)
    if ledger.is_live(job, datetime.now(UTC), liveness):
        response.status_code = status.HTTP_200_OK
        return JobResponse(
            status=str(StartOutcome.IN_PROGRESS),
            message="Archive is already in progress",
        )

    task = process_channel_task.delay(channel)
    logger.info("archive_process_enqueued", channel=channel, task_id=task.id)

    return JobResponse(
        task_id=task.id,
        status="queued",
        message="Archive processing enqueued",
    )


@router.post(
    "/{channel}/refresh",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Refresh clips",
    description="Enqueue an incremental fetch of clips created since the last refresh.",
)
async def refresh_archive(channel: str) -> JobResponse:
    """Fetch a channel's new clips in the background."""
    channel = _require_channel(channel)

    task = refresh_channel_task.delay(channel)
    logger.info("archive_refresh_enqueued", channel=channel, task_id=task.id)

    return JobResponse(
        task_id=task.id,
        status="queued",
        message="Clip refresh enqueued",
    )
