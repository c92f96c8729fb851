"""Tests for job ledger writes."""

from datetime import UTC, datetime, timedelta

import pytest

from clip_archiver.db.models import ArchiveJobModel
from clip_archiver.domain.enums import ArchiveStatus
from clip_archiver.domain.models import WriteResult, as_utc
from clip_archiver.services import ledger

NOW = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def job(db_session) -> ArchiveJobModel:
    job = ArchiveJobModel(
        channel="alpha",
        broadcaster_id="1",
        status=ArchiveStatus.RUNNING,
        total_windows=10,
        current_window=5,
        window_days=30,
        clips_found=20,
        clips_inserted=18,
        clips_skipped=2,
        archive_start=datetime(2020, 1, 1, tzinfo=UTC),
        archive_end=NOW,
        updated_at=NOW,
    )
    db_session.add(job)
    db_session.commit()
    return job


class TestRecordCheckpoint:
    """Tests for advancing the resume pointer."""

    def test_advances_and_adds_counts(self, db_session, job) -> None:
        counts = WriteResult(seen=4, inserted=3, skipped=1)

        assert ledger.record_checkpoint(db_session, job, 5, counts, NOW) is True
        db_session.commit()

        assert job.current_window == 6
        assert (job.clips_found, job.clips_inserted, job.clips_skipped) == (24, 21, 3)

    def test_stale_pointer_is_rejected(self, db_session, job) -> None:
        """A pointer already moved past the window is neither rewound nor recounted."""
        job.current_window = 9
        db_session.commit()

        advanced = ledger.record_checkpoint(
            db_session, job, 5, WriteResult(seen=4, inserted=4), NOW + timedelta(minutes=1)
        )
        db_session.commit()

        assert advanced is False
        assert job.current_window == 9
        assert job.clips_found == 20
        assert as_utc(job.updated_at) == NOW


def test_reopen_keeps_plan(db_session, job) -> None:
    """Reopening a fully fetched job resets status only."""
    job.status = ArchiveStatus.FAILED
    job.current_window = 10
    job.error_message = "Finalize error: disk full"
    db_session.commit()
    later = NOW + timedelta(days=10)

    ledger.reopen(db_session, job, later, started_by="mod")
    db_session.commit()

    assert job.status == ArchiveStatus.PENDING
    assert job.error_message is None
    assert (job.current_window, job.total_windows) == (10, 10)
    assert as_utc(job.archive_end) == NOW
    assert as_utc(job.updated_at) == later
    assert job.started_by == "mod"
