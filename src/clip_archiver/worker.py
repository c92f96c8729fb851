"""Celery worker configuration."""

from celery import Celery

from clip_archiver.config import settings
from clip_archiver.logging import setup_logging

# Setup logging before anything else
setup_logging()

# Create Celery app
celery_app = Celery(
    "clip_archiver",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,  # 10 minutes max
    task_soft_time_limit=540,  # 9 minutes soft limit; run_to_budget yields well before
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.archive_max_concurrent_jobs + 1,
    # Result backend
    result_expires=86400,  # 24 hours
    # Task routing
    task_routes={
        "archive.process_channel": {"queue": "archive"},
        "archive.refresh_channel": {"queue": "refresh"},
        "archive.refresh_sweep": {"queue": "refresh"},
    },
    # Beat scheduler (for periodic tasks)
    beat_schedule={
        "refresh-sweep": {
            "task": "archive.refresh_sweep",
            "schedule": settings.refresh_sweep_interval_seconds,  # 3 hours by default
            "options": {"queue": "refresh"},
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["clip_archiver.jobs"])
