"""Job Controller for full-history archive jobs and incremental refreshes.

Every entry point (self-service start, background processing, manual
refresh, scheduled sweep) goes through this one controller, which drives
the Window Planner, the clips adapter and the Upsert Writer. The only
state an invocation needs is the ledger row; nothing is carried in memory
between invocations.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from structlog.contextvars import bound_contextvars

from clip_archiver.adapters.clips.base import ClipsAdapter, ClipsAPIError
from clip_archiver.config import settings
from clip_archiver.db.models import ArchiveJobModel, ChannelSettingsModel
from clip_archiver.domain.enums import ArchiveStatus, RunOutcome, StartOutcome
from clip_archiver.domain.models import (
    RefreshResult,
    RunResult,
    StartResult,
    StatusResult,
    TimeWindow,
    WriteResult,
    as_utc,
)
from clip_archiver.logging import get_logger
from clip_archiver.services import ledger
from clip_archiver.services.catalog import CatalogWriter, clip_count, latest_clip_time
from clip_archiver.services.finalizer import Finalizer, resolve_missing_games
from clip_archiver.services.windows import plan_incremental, plan_windows

logger = get_logger(__name__)

STATUS_NOT_FOUND = "not_found"


class ArchiveController:
    """Starts, runs and reports on archive jobs.

    ``clock`` supplies wall-clock time for the ledger and window plans;
    ``monotonic`` measures elapsed time against execution budgets.
    """

    def __init__(
        self,
        session: Session,
        adapter: ClipsAdapter,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.clock = clock or (lambda: datetime.now(UTC))
        self.monotonic = monotonic or time.monotonic

    @property
    def liveness(self) -> timedelta:
        return timedelta(seconds=settings.archive_liveness_seconds)

    # -------------------------------------------------------------------------
    # start
    # -------------------------------------------------------------------------

    async def start(self, channel: str, started_by: str | None = None) -> StartResult:
        """Request a full-history archive for a channel.

        Idempotent: a complete job is reported as archived, a live job as in
        progress. A failed or stale job is re-planned and resumes from its
        checkpoint; one whose windows are all committed keeps its plan and
        only repeats finalization.

        Raises:
            ValueError: If the channel handle is empty after normalisation.
            ClipsAPIError: If the channel lookup fails.
        """
        channel = ledger.normalize_channel(channel)
        if not channel:
            raise ValueError("Channel handle is empty")

        now = self.clock()
        job = ledger.get_job(self.session, channel)
        existing_clips = clip_count(self.session, channel)

        if job is not None and job.status == ArchiveStatus.COMPLETE:
            return StartResult(
                status=StartOutcome.ALREADY_ARCHIVED,
                job=ledger.job_to_dict(job),
                clip_count=existing_clips,
                message=f"Channel already archived with {existing_clips} clips",
            )

        if job is not None and ledger.is_live(job, now, self.liveness):
            return StartResult(
                status=StartOutcome.IN_PROGRESS,
                job=ledger.job_to_dict(job),
                message="Archive is already in progress",
            )

        if job is None and existing_clips > 0:
            return StartResult(
                status=StartOutcome.ALREADY_ARCHIVED,
                clip_count=existing_clips,
                message=f"Channel already archived with {existing_clips} clips",
            )

        live_jobs = ledger.count_live_jobs(
            self.session, now, self.liveness, exclude_channel=channel
        )
        if live_jobs >= settings.archive_max_concurrent_jobs:
            logger.info("archive_start_rate_limited", channel=channel, live_jobs=live_jobs)
            return StartResult(
                status=StartOutcome.RATE_LIMITED,
                job=ledger.job_to_dict(job) if job else None,
                message="Archive queue is full, try again in a few minutes",
            )

        if job is not None and job.current_window >= job.total_windows:
            # Every planned window is committed. Re-planning would count the
            # clipped last window as done, so only finalization is retried.
            ledger.reopen(self.session, job, now, started_by=started_by)
            self.session.commit()
            logger.info(
                "archive_job_reopened",
                channel=channel,
                total_windows=job.total_windows,
            )
            return StartResult(
                status=StartOutcome.STARTED,
                job=ledger.job_to_dict(job),
                message="Resuming finalization",
            )

        broadcaster = await self.adapter.get_user(channel)
        if broadcaster is None:
            return StartResult(
                status=StartOutcome.NOT_FOUND,
                message=f"Channel '{channel}' not found",
            )

        floor = settings.archive_api_floor
        if job is not None:
            # Keep the original plan's origin and window length so the
            # checkpoint still points at the same windows
            archive_start = as_utc(job.archive_start)
            window_days = job.window_days
        else:
            archive_start = max(broadcaster.created_at or floor, floor)
            window_days = settings.archive_window_days

        windows = plan_windows(archive_start, now, window_days, floor=archive_start)
        job = ledger.save_plan(
            self.session,
            channel,
            broadcaster_id=broadcaster.broadcaster_id,
            total_windows=len(windows),
            window_days=window_days,
            archive_start=archive_start,
            archive_end=now,
            now=now,
            started_by=started_by,
        )
        self.session.commit()

        logger.info(
            "archive_job_planned",
            channel=channel,
            broadcaster_id=broadcaster.broadcaster_id,
            total_windows=job.total_windows,
            resume_from=job.current_window,
        )
        return StartResult(
            status=StartOutcome.STARTED,
            job=ledger.job_to_dict(job),
            message=f"Archiving {job.total_windows} windows",
        )

    # -------------------------------------------------------------------------
    # status
    # -------------------------------------------------------------------------

    def status(self, channel: str) -> StatusResult:
        """Report a channel's job status and progress."""
        channel = ledger.normalize_channel(channel)
        job = ledger.get_job(self.session, channel)

        if job is None:
            existing_clips = clip_count(self.session, channel) if channel else 0
            if existing_clips:
                return StatusResult(
                    status=ArchiveStatus.COMPLETE,
                    progress_percent=100,
                    total_clips=existing_clips,
                )
            return StatusResult(status=STATUS_NOT_FOUND)

        return StatusResult(
            status=ArchiveStatus(job.status),
            progress_percent=ledger.progress_percent(job),
            job=ledger.job_to_dict(job),
            total_clips=(
                clip_count(self.session, channel)
                if job.status == ArchiveStatus.COMPLETE
                else None
            ),
        )

    # -------------------------------------------------------------------------
    # run_to_budget
    # -------------------------------------------------------------------------

    async def run_to_budget(self, channel: str, budget: float | None = None) -> RunResult:
        """Process windows from the checkpoint until done or out of time.

        Each window's rows and its checkpoint commit together. At least one
        window is processed per call; after that the controller stops at a
        window boundary once the next window would likely overrun ``budget``.
        Reaching the last window hands over to the Finalizer. If another
        runner moved the checkpoint first, this one stops as ``superseded``.
        """
        channel = ledger.normalize_channel(channel)
        budget = settings.archive_time_budget_seconds if budget is None else budget
        started = self.monotonic()

        job = ledger.get_job(self.session, channel)
        if job is None:
            return RunResult(
                outcome=RunOutcome.NOT_FOUND,
                error=f"No archive job for channel '{channel}'",
            )
        if job.status == ArchiveStatus.COMPLETE:
            return RunResult(
                outcome=RunOutcome.COMPLETE,
                current_window=job.current_window,
                total_windows=job.total_windows,
            )

        with bound_contextvars(channel=channel):
            windows = self._windows_for(job)
            result = RunResult(
                outcome=RunOutcome.CONTINUE_LATER,
                current_window=job.current_window,
                total_windows=len(windows),
            )
            if len(windows) != job.total_windows:
                message = (
                    f"Window plan mismatch: ledger has {job.total_windows}, "
                    f"plan has {len(windows)}"
                )
                return self._fail(channel, result, message)

            ledger.set_status(self.session, job, ArchiveStatus.RUNNING, self.clock())
            writer = CatalogWriter(self.session, channel)
            last_duration = 0.0

            for window in windows[job.current_window :]:
                elapsed = self.monotonic() - started
                if result.windows_processed and elapsed + last_duration > budget:
                    logger.info(
                        "archive_budget_exhausted",
                        elapsed=round(elapsed, 2),
                        current_window=job.current_window,
                        total_windows=job.total_windows,
                    )
                    return result

                window_started = self.monotonic()
                try:
                    if window.index and window.index % settings.token_refresh_every_windows == 0:
                        await self.adapter.refresh_token()
                    counts = await self._ingest_window(writer, job.broadcaster_id, window)
                    advanced = ledger.record_checkpoint(
                        self.session, job, window.index, counts, self.clock()
                    )
                    if not advanced:
                        self.session.rollback()
                        logger.warning(
                            "archive_checkpoint_superseded",
                            window=window.index,
                            current_window=job.current_window,
                        )
                        result.outcome = RunOutcome.SUPERSEDED
                        result.current_window = job.current_window
                        return result
                    self.session.commit()
                except ClipsAPIError as e:
                    return self._fail(
                        channel,
                        result,
                        f"Window {window.index + 1}/{len(windows)} failed: {e}",
                    )
                except SQLAlchemyError as e:
                    return self._fail(
                        channel,
                        result,
                        f"Store error in window {window.index + 1}/{len(windows)}: {e}",
                    )

                last_duration = self.monotonic() - window_started
                result.windows_processed += 1
                result.current_window = job.current_window
                result.counts += counts
                logger.info(
                    "archive_window_committed",
                    window=window.index,
                    total_windows=len(windows),
                    found=counts.seen,
                    inserted=counts.inserted,
                    skipped=counts.skipped,
                    seconds=round(last_duration, 2),
                )

            try:
                await Finalizer(self.session, self.adapter, channel, self.clock).run(job)
            except Exception as e:
                logger.exception("finalize_failed")
                return self._fail(channel, result, f"Finalize error: {e}")

            result.outcome = RunOutcome.COMPLETE
            result.current_window = job.current_window
            return result

    def _windows_for(self, job: ArchiveJobModel) -> list[TimeWindow]:
        """Re-derive the job's plan from its persisted bounds."""
        archive_start = as_utc(job.archive_start)
        return plan_windows(
            archive_start,
            as_utc(job.archive_end),
            job.window_days,
            floor=archive_start,
        )

    def _fail(self, channel: str, result: RunResult, message: str) -> RunResult:
        """Roll back to the last checkpoint and record the failure."""
        ledger.mark_failed(self.session, channel, message, self.clock())
        job = ledger.get_job(self.session, channel)
        result.outcome = RunOutcome.FAILED
        result.error = message
        if job is not None:
            result.current_window = job.current_window
        return result

    async def _ingest_window(
        self,
        writer: CatalogWriter,
        broadcaster_id: str,
        window: TimeWindow,
    ) -> WriteResult:
        """Fetch every page of a window and upsert it. Does not commit."""
        counts = WriteResult()
        async for page in self.adapter.iter_window_pages(broadcaster_id, window.start, window.end):
            counts += writer.write(page.records)
            counts.seen += page.malformed
            counts.skipped += page.malformed
        return counts

    # -------------------------------------------------------------------------
    # refresh
    # -------------------------------------------------------------------------

    async def refresh(self, channel: str, deadline: float | None = None) -> RefreshResult:
        """Fetch clips created since the channel's last refresh.

        The plan starts a safety margin before ``last_refresh`` (or the newest
        archived clip) and uses the shorter incremental windows. Each window
        commits on its own. Stopping early, at ``deadline`` (a ``monotonic``
        reading) or on an upstream error, advances ``last_refresh`` only to
        the end of the last committed window.
        """
        channel = ledger.normalize_channel(channel)
        result = RefreshResult(channel=channel)
        now = self.clock()

        if not channel or clip_count(self.session, channel) == 0:
            result.skipped = "no_catalog"
            return result

        job = ledger.get_job(self.session, channel)
        if job is not None and ledger.is_live(job, now, self.liveness):
            result.skipped = "archive_in_progress"
            return result

        with bound_contextvars(channel=channel):
            broadcaster_id = job.broadcaster_id if job is not None else None
            if not broadcaster_id:
                try:
                    broadcaster = await self.adapter.get_user(channel)
                except ClipsAPIError as e:
                    result.error = str(e)
                    result.errors += 1
                    logger.error("refresh_lookup_failed", error=str(e))
                    return result
                if broadcaster is None:
                    result.error = f"Channel '{channel}' not found"
                    return result
                broadcaster_id = broadcaster.broadcaster_id

            channel_settings = self.session.get(ChannelSettingsModel, channel)
            base = as_utc(channel_settings.last_refresh) if channel_settings else None
            if base is None:
                base = latest_clip_time(self.session, channel) or now
            windows = plan_incremental(base, now)
            result.windows = len(windows)
            result.fetch_from = windows[0].start if windows else base

            writer = CatalogWriter(self.session, channel)
            completed_until: datetime | None = None
            for window in windows:
                if deadline is not None and self.monotonic() >= deadline:
                    logger.info("refresh_deadline_reached", window=window.index)
                    break
                try:
                    counts = await self._ingest_window(writer, broadcaster_id, window)
                    self.session.commit()
                except ClipsAPIError as e:
                    self.session.rollback()
                    result.errors += 1
                    result.error = str(e)
                    logger.error("refresh_window_failed", window=window.index, error=str(e))
                    break

                result.windows_processed += 1
                result.new_clips += counts.inserted
                completed_until = window.end

            finished = result.windows_processed == len(windows)
            if result.windows_processed:
                result.games_resolved = await resolve_missing_games(
                    self.session, self.adapter, channel, now=now
                )

            stamp = now if finished else completed_until
            if stamp is not None:
                self._stamp_last_refresh(channel, stamp)

            logger.info(
                "channel_refreshed",
                new_clips=result.new_clips,
                windows=result.windows,
                windows_processed=result.windows_processed,
                games_resolved=result.games_resolved,
                complete=finished,
            )
            return result

    def _stamp_last_refresh(self, channel: str, value: datetime) -> None:
        row = self.session.get(ChannelSettingsModel, channel)
        if row is None:
            self.session.add(ChannelSettingsModel(channel=channel, last_refresh=value))
        else:
            row.last_refresh = value
        self.session.commit()
