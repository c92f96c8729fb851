"""Celery job definitions."""

from clip_archiver.jobs.archive_tasks import (
    process_channel_task,
    refresh_channel_task,
    refresh_sweep_task,
)

__all__ = [
    "process_channel_task",
    "refresh_channel_task",
    "refresh_sweep_task",
]
