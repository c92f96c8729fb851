"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_RESULT_BACKEND"] = "redis://localhost:6379/1"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["CLIPS_PROVIDER"] = "stub"
os.environ["CRON_SECRET"] = "test-cron-secret"


class FakeClock:
    """Controllable wall clock and monotonic timer."""

    def __init__(self, now: datetime) -> None:
        self.now = now
        self.elapsed = 0.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.elapsed += seconds


def make_clip(clip_id: str, created_at: datetime | None, **overrides):
    """Build a ClipRecord with sensible defaults."""
    from clip_archiver.domain.models import ClipRecord

    fields = {
        "title": f"Clip {clip_id}",
        "duration": 30.0,
        "view_count": 10,
        "game_id": "509658",
        "creator_name": "viewer",
        "thumbnail_url": f"https://clips.example/{clip_id}.jpg",
        "url": f"https://clips.example/{clip_id}",
    }
    fields.update(overrides)
    return ClipRecord(clip_id=clip_id, created_at=created_at, **fields)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with working SAVEPOINT support."""
    from sqlalchemy import create_engine, event
    from sqlalchemy.pool import StaticPool

    from clip_archiver.db.models import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Database session configured like the application's SessionLocal."""
    from sqlalchemy.orm import sessionmaker

    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    yield session
    session.close()


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2024-01-01 UTC."""
    return FakeClock(datetime(2024, 1, 1, tzinfo=UTC))


@pytest.fixture
def clip_factory():
    """Factory for ClipRecords."""
    return make_clip


@pytest.fixture
def stub_adapter():
    """Get a stub clips adapter with no channels."""
    from clip_archiver.adapters.clips.stub import StubClipsAdapter

    return StubClipsAdapter()


@pytest.fixture
def controller(db_session, stub_adapter, clock):
    """Archive controller over the test database, stub adapter and fake clock."""
    from clip_archiver.services.archiver import ArchiveController

    return ArchiveController(db_session, stub_adapter, clock=clock, monotonic=clock.monotonic)


@pytest.fixture
def test_client(db_session, stub_adapter) -> Generator[TestClient, None, None]:
    """Create a test client with the database and clips adapter overridden."""
    from clip_archiver.api.deps import get_adapter
    from clip_archiver.db.session import get_session
    from clip_archiver.main import app

    async def _adapter():
        yield stub_adapter

    app.dependency_overrides[get_session] = lambda: db_session
    app.dependency_overrides[get_adapter] = _adapter
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
