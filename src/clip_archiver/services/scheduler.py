"""Scheduler sweep: incremental refresh across every archived channel."""

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clip_archiver.adapters.clips.base import ClipsAdapter
from clip_archiver.config import settings
from clip_archiver.db.models import ChannelSettingsModel, ClipModel
from clip_archiver.domain.models import RefreshResult, SweepReport, as_utc
from clip_archiver.logging import get_logger
from clip_archiver.services import ledger
from clip_archiver.services.archiver import ArchiveController

logger = get_logger(__name__)


def channels_by_staleness(session: Session) -> list[tuple[str, datetime | None]]:
    """Channels with a non-empty catalog, never-refreshed first, then oldest refresh."""
    rows = session.execute(
        select(ClipModel.channel, ChannelSettingsModel.last_refresh)
        .outerjoin(ChannelSettingsModel, ChannelSettingsModel.channel == ClipModel.channel)
        .group_by(ClipModel.channel, ChannelSettingsModel.last_refresh)
        .order_by(ChannelSettingsModel.last_refresh.asc().nulls_first(), ClipModel.channel)
    ).all()
    return [(channel, as_utc(last_refresh)) for channel, last_refresh in rows]


class RefreshScheduler:
    """Runs one bounded sweep of incremental refreshes.

    The sweep keeps no state of its own between ticks: each channel's
    ``last_refresh`` decides whether it is due, so channels not reached
    before the budget runs out are simply the stalest ones next time.
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
        self.controller = ArchiveController(
            session, adapter, clock=self.clock, monotonic=self.monotonic
        )

    async def sweep(self, budget: float | None = None) -> SweepReport:
        """Refresh due channels, stalest first, until done or out of time."""
        budget = settings.refresh_sweep_budget_seconds if budget is None else budget
        started = self.monotonic()
        deadline = started + budget
        now = self.clock()
        report = SweepReport()

        live_jobs = ledger.count_live_jobs(
            self.session, now, timedelta(seconds=settings.archive_liveness_seconds)
        )
        if live_jobs >= settings.archive_max_concurrent_jobs:
            report.deferred = True
            logger.info("refresh_sweep_deferred", live_jobs=live_jobs)
            return report

        channels = channels_by_staleness(self.session)
        report.channels_checked = len(channels)
        fresh_after = now - timedelta(hours=settings.refresh_freshness_hours)

        for position, (channel, last_refresh) in enumerate(channels):
            if self.monotonic() >= deadline:
                report.unreached = [name for name, _ in channels[position:]]
                logger.info("refresh_sweep_budget_exhausted", unreached=len(report.unreached))
                break

            if last_refresh is not None and last_refresh > fresh_after:
                report.skipped.append(channel)
                continue

            try:
                result = await self.controller.refresh(channel, deadline=deadline)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error("refresh_channel_failed", channel=channel, error=str(e))
                result = RefreshResult(channel=channel, errors=1, error=str(e))

            if result.skipped:
                report.skipped.append(channel)
            else:
                report.results.append(result)

        report.runtime_seconds = round(self.monotonic() - started, 3)
        logger.info(
            "refresh_sweep_completed",
            channels_checked=report.channels_checked,
            channels_refreshed=report.channels_refreshed,
            skipped=len(report.skipped),
            unreached=len(report.unreached),
            new_clips=sum(r.new_clips for r in report.results),
            runtime_seconds=report.runtime_seconds,
        )
        return report
