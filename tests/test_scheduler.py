"""Tests for the refresh scheduler sweep."""

from datetime import UTC, datetime, timedelta

import pytest

from clip_archiver.adapters.clips import StubClipsAdapter
from clip_archiver.db.models import ArchiveJobModel, ChannelSettingsModel, ClipModel
from clip_archiver.domain.enums import ArchiveStatus
from clip_archiver.services.scheduler import RefreshScheduler, channels_by_staleness


def _archived_channel(session, adapter, channel, last_refresh, broadcaster_id=None):
    broadcaster_id = broadcaster_id or f"id-{channel}"
    adapter.add_channel(channel, broadcaster_id)
    session.add(ClipModel(channel=channel, clip_id=f"{channel}-1", seq=1))
    if last_refresh is not None:
        session.add(ChannelSettingsModel(channel=channel, last_refresh=last_refresh))
    session.commit()


@pytest.fixture
def scheduler(db_session, stub_adapter, clock) -> RefreshScheduler:
    return RefreshScheduler(db_session, stub_adapter, clock=clock, monotonic=clock.monotonic)


def test_stalest_channels_first(db_session, stub_adapter, clock) -> None:
    """Never-refreshed channels come first, then oldest refresh."""
    _archived_channel(db_session, stub_adapter, "recent", clock.now - timedelta(hours=5))
    _archived_channel(db_session, stub_adapter, "never", None)
    _archived_channel(db_session, stub_adapter, "old", clock.now - timedelta(days=3))

    assert [channel for channel, _ in channels_by_staleness(db_session)] == [
        "never",
        "old",
        "recent",
    ]


def test_channels_without_clips_are_ignored(db_session, clock) -> None:
    """Settings rows alone do not make a channel eligible."""
    db_session.add(ChannelSettingsModel(channel="empty", last_refresh=clock.now))
    db_session.commit()

    assert channels_by_staleness(db_session) == []


@pytest.mark.asyncio
async def test_recently_refreshed_channel_is_skipped(
    scheduler, db_session, stub_adapter, clock
) -> None:
    """A refresh 3 hours ago is inside the 4 hour freshness threshold."""
    _archived_channel(db_session, stub_adapter, "fresh", clock.now - timedelta(hours=3))
    _archived_channel(db_session, stub_adapter, "due", clock.now - timedelta(hours=5))

    report = await scheduler.sweep()

    assert report.skipped == ["fresh"]
    assert [r.channel for r in report.results] == ["due"]
    assert report.channels_checked == 2
    requested = {broadcaster for broadcaster, _, _ in stub_adapter.window_requests}
    assert requested == {"id-due"}


@pytest.mark.asyncio
async def test_sweep_stamps_last_refresh(scheduler, db_session, stub_adapter, clock) -> None:
    """Refreshed channels record the sweep time."""
    _archived_channel(db_session, stub_adapter, "due", clock.now - timedelta(days=1))

    await scheduler.sweep()

    row = db_session.get(ChannelSettingsModel, "due")
    assert row.last_refresh.replace(tzinfo=UTC) == clock.now


@pytest.mark.asyncio
async def test_budget_exhaustion_records_unreached(db_session, clock) -> None:
    """Channels not reached before the budget runs out are reported."""

    class SlowAdapter(StubClipsAdapter):
        async def iter_window_pages(self, broadcaster_id, started_at, ended_at):
            clock.advance(30)
            async for page in super().iter_window_pages(broadcaster_id, started_at, ended_at):
                yield page

    adapter = SlowAdapter()
    for i, channel in enumerate(["a", "b", "c", "d"]):
        _archived_channel(db_session, adapter, channel, clock.now - timedelta(days=1, hours=i))
    scheduler = RefreshScheduler(db_session, adapter, clock=clock, monotonic=clock.monotonic)

    report = await scheduler.sweep(budget=50)

    # Stalest first: d, c, b, a; each one-window refresh takes 30s
    assert [r.channel for r in report.results] == ["d", "c"]
    assert report.unreached == ["b", "a"]
    assert report.runtime_seconds == 60


@pytest.mark.asyncio
async def test_sweep_deferred_when_archive_slots_full(
    scheduler, db_session, stub_adapter, clock
) -> None:
    """Live archive jobs at the cap defer the whole tick."""
    _archived_channel(db_session, stub_adapter, "due", None)
    for channel in ("one", "two"):
        db_session.add(
            ArchiveJobModel(
                channel=channel,
                broadcaster_id=channel,
                status=ArchiveStatus.RUNNING,
                total_windows=5,
                current_window=1,
                window_days=30,
                archive_start=datetime(2020, 1, 1, tzinfo=UTC),
                archive_end=clock.now,
                updated_at=clock.now,
            )
        )
    db_session.commit()

    report = await scheduler.sweep()

    assert report.deferred is True
    assert report.results == []
    assert stub_adapter.window_requests == []


@pytest.mark.asyncio
async def test_failed_channel_does_not_stop_sweep(
    scheduler, db_session, stub_adapter, clock
) -> None:
    """A channel that cannot be looked up is reported and the sweep continues."""
    _archived_channel(db_session, stub_adapter, "good", None)
    db_session.add(ClipModel(channel="gone", clip_id="gone-1", seq=1))
    db_session.commit()

    report = await scheduler.sweep()

    by_channel = {r.channel: r for r in report.results}
    assert by_channel["gone"].error == "Channel 'gone' not found"
    assert by_channel["good"].success
