"""Tests for archive and cron endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from clip_archiver.adapters.clips import UpstreamPermanentError
from clip_archiver.db.models import ArchiveJobModel, ClipModel
from clip_archiver.domain.enums import ArchiveStatus

ARCHIVE_TASKS = "clip_archiver.api.routes.archive"


def _queued(task_id: str = "task-123") -> MagicMock:
    return MagicMock(id=task_id)


class TestStartEndpoint:
    """Tests for POST /api/v1/archive/{channel}/start."""

    def test_start_enqueues_first_slice(self, test_client: TestClient, stub_adapter) -> None:
        stub_adapter.add_channel("somestreamer", "123", datetime(2023, 1, 1, tzinfo=UTC))

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            task.delay.return_value = _queued()
            response = test_client.post(
                "/api/v1/archive/SomeStreamer/start", json={"started_by": "dashboard"}
            )

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "started"
        assert data["task_id"] == "task-123"
        assert data["job"]["channel"] == "somestreamer"
        assert data["job"]["started_by"] == "dashboard"
        task.delay.assert_called_once_with("somestreamer")

    def test_start_without_body(self, test_client: TestClient, stub_adapter) -> None:
        stub_adapter.add_channel("somestreamer", "123")

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            task.delay.return_value = _queued()
            response = test_client.post("/api/v1/archive/somestreamer/start")

        assert response.status_code == 202

    def test_unknown_channel_is_404(self, test_client: TestClient) -> None:
        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            response = test_client.post("/api/v1/archive/nobody/start")

        assert response.status_code == 404
        assert response.json()["status"] == "not_found"
        task.delay.assert_not_called()

    def test_archived_channel_is_not_enqueued(
        self, test_client: TestClient, db_session
    ) -> None:
        db_session.add(ClipModel(channel="done", clip_id="c1", seq=1))
        db_session.commit()

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            response = test_client.post("/api/v1/archive/done/start")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "already_archived"
        assert data["clip_count"] == 1
        task.delay.assert_not_called()

    def test_invalid_channel_is_400(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/archive/!!!/start")

        assert response.status_code == 400

    def test_malformed_upstream_user_is_502(self, test_client: TestClient, stub_adapter) -> None:
        stub_adapter.get_user = AsyncMock(
            side_effect=UpstreamPermanentError("Malformed user record for 'odd'")
        )

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            response = test_client.post("/api/v1/archive/odd/start")

        assert response.status_code == 502
        task.delay.assert_not_called()


class TestStatusEndpoint:
    """Tests for GET /api/v1/archive/{channel}/status."""

    def test_unknown_channel(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/archive/nobody/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "not_found"
        assert data["progress_percent"] == 0
        assert data["job"] is None

    def test_running_job_progress(self, test_client: TestClient, db_session) -> None:
        now = datetime.now(UTC)
        db_session.add(
            ArchiveJobModel(
                channel="busy",
                broadcaster_id="1",
                status=ArchiveStatus.RUNNING,
                total_windows=8,
                current_window=2,
                window_days=30,
                archive_start=datetime(2020, 1, 1, tzinfo=UTC),
                archive_end=now,
                updated_at=now,
            )
        )
        db_session.commit()

        data = test_client.get("/api/v1/archive/busy/status").json()

        assert data["status"] == "running"
        assert data["progress_percent"] == 25
        assert data["job"]["current_window"] == 2
        assert data["total_clips"] is None


class TestProcessEndpoint:
    """Tests for POST /api/v1/archive/{channel}/process."""

    def test_no_job_is_404(self, test_client: TestClient) -> None:
        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            response = test_client.post("/api/v1/archive/nobody/process")

        assert response.status_code == 404
        task.delay.assert_not_called()

    def test_existing_job_is_enqueued(self, test_client: TestClient, db_session) -> None:
        now = datetime.now(UTC)
        db_session.add(
            ArchiveJobModel(
                channel="paused",
                broadcaster_id="1",
                status=ArchiveStatus.FAILED,
                total_windows=8,
                current_window=5,
                window_days=30,
                archive_start=datetime(2020, 1, 1, tzinfo=UTC),
                archive_end=now,
                updated_at=now,
            )
        )
        db_session.commit()

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            task.delay.return_value = _queued("task-9")
            response = test_client.post("/api/v1/archive/paused/process")

        assert response.status_code == 202
        assert response.json() == {
            "task_id": "task-9",
            "status": "queued",
            "message": "Archive processing enqueued",
        }
        task.delay.assert_called_once_with("paused")

    def test_live_job_is_not_enqueued_twice(self, test_client: TestClient, db_session) -> None:
        """A job already being processed reports in_progress instead of a second chain."""
        now = datetime.now(UTC)
        db_session.add(
            ArchiveJobModel(
                channel="busy",
                broadcaster_id="1",
                status=ArchiveStatus.RUNNING,
                total_windows=8,
                current_window=5,
                window_days=30,
                archive_start=datetime(2020, 1, 1, tzinfo=UTC),
                archive_end=now,
                updated_at=now,
            )
        )
        db_session.commit()

        with patch(f"{ARCHIVE_TASKS}.process_channel_task") as task:
            response = test_client.post("/api/v1/archive/busy/process")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "in_progress"
        assert data["task_id"] is None
        task.delay.assert_not_called()


def test_refresh_endpoint_enqueues(test_client: TestClient) -> None:
    with patch(f"{ARCHIVE_TASKS}.refresh_channel_task") as task:
        task.delay.return_value = _queued()
        response = test_client.post("/api/v1/archive/SomeStreamer/refresh")

    assert response.status_code == 202
    task.delay.assert_called_once_with("somestreamer")


class TestCronEndpoint:
    """Tests for POST /api/v1/cron/refresh."""

    def test_header_key(self, test_client: TestClient) -> None:
        with patch("clip_archiver.api.routes.cron.refresh_sweep_task") as task:
            task.delay.return_value = _queued()
            response = test_client.post(
                "/api/v1/cron/refresh", headers={"X-Cron-Key": "test-cron-secret"}
            )

        assert response.status_code == 202
        assert response.json()["status"] == "queued"
        task.delay.assert_called_once_with()

    def test_query_key(self, test_client: TestClient) -> None:
        with patch("clip_archiver.api.routes.cron.refresh_sweep_task") as task:
            task.delay.return_value = _queued()
            response = test_client.post("/api/v1/cron/refresh?key=test-cron-secret")

        assert response.status_code == 202

    def test_wrong_key_is_rejected(self, test_client: TestClient) -> None:
        with patch("clip_archiver.api.routes.cron.refresh_sweep_task") as task:
            response = test_client.post(
                "/api/v1/cron/refresh", headers={"X-Cron-Key": "guess"}
            )

        assert response.status_code == 403
        assert response.json()["detail"] == "Invalid cron key"
        task.delay.assert_not_called()

    def test_missing_key_is_rejected(self, test_client: TestClient) -> None:
        response = test_client.post("/api/v1/cron/refresh")

        assert response.status_code == 403

    def test_unset_secret_rejects_everything(self, test_client: TestClient) -> None:
        with patch("clip_archiver.api.routes.cron.settings") as settings:
            settings.cron_secret = None
            response = test_client.post("/api/v1/cron/refresh?key=anything")

        assert response.status_code == 403
