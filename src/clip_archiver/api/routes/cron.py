"""Scheduler tick for external time-based triggers."""

import secrets

from fastapi import APIRouter, Header, HTTPException, Query, status

from clip_archiver.api.routes.archive import JobResponse
from clip_archiver.config import settings
from clip_archiver.jobs.archive_tasks import refresh_sweep_task
from clip_archiver.logging import get_logger

router = APIRouter(prefix="/cron", tags=["Cron"])
logger = get_logger(__name__)


def _secret_matches(provided: str | None) -> bool:
    if not settings.cron_secret or not provided:
        return False
    return secrets.compare_digest(provided.encode(), settings.cron_secret.encode())


@router.post(
    "/refresh",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scheduler tick",
    description="Enqueue a refresh sweep. Requires the shared cron secret.",
)
async def trigger_refresh_sweep(
    x_cron_key: str | None = Header(None),
    key: str | None = Query(None, description="Shared cron secret"),
) -> JobResponse:
    """Enqueue one scheduler sweep."""
    if not _secret_matches(x_cron_key or key):
        logger.warning("cron_refresh_forbidden")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid cron key",
        )

    task = refresh_sweep_task.delay()
    logger.info("cron_refresh_enqueued", task_id=task.id)

    return JobResponse(
        task_id=task.id,
        status="queued",
        message="Refresh sweep enqueued",
    )
