"""Celery tasks for archive jobs, manual refreshes and the scheduler sweep.

``process_channel`` is the detached execution mode of ``run_to_budget``:
each task invocation runs one bounded slice and, if windows remain,
re-enqueues itself. Durability comes from the ledger checkpoint, so a lost
or killed task is recovered by the next ``start`` or ``process`` call.
"""

from typing import Any

from clip_archiver.adapters.clips import get_clips_adapter
from clip_archiver.config import settings
from clip_archiver.db.session import get_session_context
from clip_archiver.domain.enums import RunOutcome
from clip_archiver.domain.models import RefreshResult, RunResult, SweepReport
from clip_archiver.logging import get_logger
from clip_archiver.services.archiver import ArchiveController
from clip_archiver.services.scheduler import RefreshScheduler
from clip_archiver.utils import run_async
from clip_archiver.worker import celery_app

logger = get_logger(__name__)


async def _run_slice(channel: str, budget: float | None) -> RunResult:
    adapter = get_clips_adapter()
    try:
        with get_session_context() as session:
            return await ArchiveController(session, adapter).run_to_budget(channel, budget)
    finally:
        await adapter.close()


async def _refresh(channel: str) -> RefreshResult:
    adapter = get_clips_adapter()
    try:
        with get_session_context() as session:
            return await ArchiveController(session, adapter).refresh(channel)
    finally:
        await adapter.close()


async def _sweep(budget: float | None) -> SweepReport:
    adapter = get_clips_adapter()
    try:
        with get_session_context() as session:
            return await RefreshScheduler(session, adapter).sweep(budget)
    finally:
        await adapter.close()


@celery_app.task(bind=True, name="archive.process_channel")
def process_channel_task(
    self: Any,
    channel: str,
    budget: float | None = None,
) -> dict[str, Any]:
    """Run one bounded slice of a channel's archive job.

    Args:
        channel: Channel handle.
        budget: Execution-time budget in seconds (defaults to settings).

    Returns:
        Result dict with the run outcome and checkpoint position.
    """
    task_id = self.request.id
    logger.info("process_channel_started", task_id=task_id, channel=channel)

    result = run_async(_run_slice(channel, budget))

    if result.outcome == RunOutcome.CONTINUE_LATER:
        next_task = self.apply_async(
            args=(channel,),
            kwargs={"budget": budget},
            countdown=settings.archive_continue_countdown_seconds,
        )
        logger.info(
            "process_channel_continued",
            task_id=task_id,
            channel=channel,
            next_task_id=next_task.id,
            current_window=result.current_window,
            total_windows=result.total_windows,
        )

    return {
        "success": result.outcome != RunOutcome.FAILED,
        "task_id": task_id,
        "channel": channel,
        "status": str(result.outcome),
        "windows_processed": result.windows_processed,
        "current_window": result.current_window,
        "total_windows": result.total_windows,
        "clips_found": result.counts.seen,
        "clips_inserted": result.counts.inserted,
        "clips_skipped": result.counts.skipped,
        "error": result.error,
    }


@celery_app.task(bind=True, name="archive.refresh_channel")
def refresh_channel_task(self: Any, channel: str) -> dict[str, Any]:
    """Fetch a channel's new clips since its last refresh."""
    task_id = self.request.id
    logger.info("refresh_channel_started", task_id=task_id, channel=channel)

    result = run_async(_refresh(channel))

    return {
        "success": result.success,
        "task_id": task_id,
        "channel": result.channel,
        "new_clips": result.new_clips,
        "windows": result.windows,
        "windows_processed": result.windows_processed,
        "games_resolved": result.games_resolved,
        "skipped": result.skipped,
        "error": result.error,
    }


@celery_app.task(bind=True, name="archive.refresh_sweep")
def refresh_sweep_task(self: Any, budget: float | None = None) -> dict[str, Any]:
    """Refresh every due channel within the sweep budget."""
    task_id = self.request.id
    logger.info("refresh_sweep_started", task_id=task_id)

    report = run_async(_sweep(budget))

    return {
        "success": True,
        "task_id": task_id,
        "deferred": report.deferred,
        "channels_checked": report.channels_checked,
        "channels_refreshed": report.channels_refreshed,
        "skipped": report.skipped,
        "unreached": report.unreached,
        "runtime_seconds": report.runtime_seconds,
        "results": [
            {
                "channel": r.channel,
                "new_clips": r.new_clips,
                "windows_processed": r.windows_processed,
                "error": r.error,
            }
            for r in report.results
        ],
    }
