"""Tests for Celery archive tasks (executed eagerly, broker calls patched)."""

from unittest.mock import AsyncMock, MagicMock, patch

from clip_archiver.domain.enums import RunOutcome
from clip_archiver.domain.models import RefreshResult, RunResult, SweepReport, WriteResult
from clip_archiver.jobs.archive_tasks import (
    process_channel_task,
    refresh_channel_task,
    refresh_sweep_task,
)

TASKS = "clip_archiver.jobs.archive_tasks"


class TestProcessChannelTask:
    """Tests for the archive slice task."""

    def test_continue_later_reenqueues(self) -> None:
        result = RunResult(
            outcome=RunOutcome.CONTINUE_LATER,
            windows_processed=4,
            current_window=4,
            total_windows=61,
            counts=WriteResult(seen=10, inserted=10),
        )
        with (
            patch(f"{TASKS}._run_slice", new=AsyncMock(return_value=result)),
            patch.object(process_channel_task, "apply_async") as apply_async,
            patch(f"{TASKS}.settings") as settings,
        ):
            settings.archive_continue_countdown_seconds = 7
            apply_async.return_value = MagicMock(id="next")
            output = process_channel_task.apply(args=("alpha",), kwargs={"budget": 30.0}).get()

        apply_async.assert_called_once_with(
            args=("alpha",), kwargs={"budget": 30.0}, countdown=7
        )
        assert output["status"] == "continue_later"
        assert output["success"] is True
        assert output["current_window"] == 4
        assert output["clips_inserted"] == 10

    def test_complete_does_not_reenqueue(self) -> None:
        result = RunResult(outcome=RunOutcome.COMPLETE, current_window=61, total_windows=61)
        with (
            patch(f"{TASKS}._run_slice", new=AsyncMock(return_value=result)),
            patch.object(process_channel_task, "apply_async") as apply_async,
        ):
            output = process_channel_task.apply(args=("alpha",)).get()

        apply_async.assert_not_called()
        assert output["status"] == "complete"

    def test_failure_is_reported_not_retried(self) -> None:
        result = RunResult(
            outcome=RunOutcome.FAILED,
            current_window=40,
            total_windows=61,
            error="Window 41/61 failed: HTTP 503",
        )
        with (
            patch(f"{TASKS}._run_slice", new=AsyncMock(return_value=result)),
            patch.object(process_channel_task, "apply_async") as apply_async,
        ):
            output = process_channel_task.apply(args=("alpha",)).get()

        apply_async.assert_not_called()
        assert output["success"] is False
        assert output["error"] == "Window 41/61 failed: HTTP 503"

    def test_superseded_chain_ends(self) -> None:
        """A slice that lost its checkpoint to another runner does not continue."""
        result = RunResult(outcome=RunOutcome.SUPERSEDED, current_window=9, total_windows=61)
        with (
            patch(f"{TASKS}._run_slice", new=AsyncMock(return_value=result)),
            patch.object(process_channel_task, "apply_async") as apply_async,
        ):
            output = process_channel_task.apply(args=("alpha",)).get()

        apply_async.assert_not_called()
        assert output["status"] == "superseded"
        assert output["current_window"] == 9


def test_refresh_channel_task() -> None:
    result = RefreshResult(channel="alpha", new_clips=3, windows=1, windows_processed=1)
    with patch(f"{TASKS}._refresh", new=AsyncMock(return_value=result)):
        output = refresh_channel_task.apply(args=("alpha",)).get()

    assert output["success"] is True
    assert output["new_clips"] == 3


def test_refresh_sweep_task() -> None:
    report = SweepReport(
        channels_checked=3,
        results=[RefreshResult(channel="a", new_clips=2)],
        skipped=["b"],
        unreached=["c"],
    )
    sweep = AsyncMock(return_value=report)
    with patch(f"{TASKS}._sweep", new=sweep):
        output = refresh_sweep_task.apply(kwargs={"budget": 45.0}).get()

    sweep.assert_awaited_once_with(45.0)
    assert output["channels_refreshed"] == 1
    assert output["skipped"] == ["b"]
    assert output["unreached"] == ["c"]
    assert output["results"][0]["channel"] == "a"
