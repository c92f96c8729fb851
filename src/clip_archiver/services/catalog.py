"""Catalog Store access and the Upsert Writer.

The writer is the pipeline's idempotency guarantee: a clip already present
for the channel is updated in place (view counter, title, thumbnail) and
keeps its sequence number; a new clip gets the next free sequence number.
Re-running any window, or a whole plan, never creates duplicate rows or
duplicate sequence numbers.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clip_archiver.db.models import ClipModel
from clip_archiver.domain.models import ClipRecord, WriteResult, as_utc
from clip_archiver.logging import get_logger

logger = get_logger(__name__)


def max_sequence(session: Session, channel: str) -> int:
    """Highest sequence number in the channel's catalog (0 when empty)."""
    value = session.execute(
        select(func.coalesce(func.max(ClipModel.seq), 0)).where(ClipModel.channel == channel)
    ).scalar_one()
    return int(value)


def clip_count(session: Session, channel: str) -> int:
    """Number of catalog rows for the channel."""
    return int(
        session.execute(
            select(func.count(ClipModel.id)).where(ClipModel.channel == channel)
        ).scalar_one()
    )


def latest_clip_time(session: Session, channel: str) -> datetime | None:
    """Creation time of the newest clip in the channel's catalog."""
    value = session.execute(
        select(func.max(ClipModel.created_at)).where(ClipModel.channel == channel)
    ).scalar_one_or_none()
    return as_utc(value)


class CatalogWriter:
    """Upserts fetched clips into one channel's catalog.

    The next sequence number is read from the database once, when the writer
    is created, and then advanced in memory. Create one writer per job
    invocation; never reuse one across invocations, since another run may
    have advanced the channel in between.
    """

    def __init__(self, session: Session, channel: str) -> None:
        self.session = session
        self.channel = channel
        self.next_seq = max_sequence(session, channel) + 1

    def write(self, records: Iterable[ClipRecord]) -> WriteResult:
        """Upsert a batch of records.

        Does not commit; the caller commits together with its checkpoint.

        Returns:
            Counts of records seen, inserted, updated and skipped.
        """
        batch = list(records)
        result = WriteResult(seen=len(batch))
        if not batch:
            return result

        existing = self._load_existing({record.clip_id for record in batch})

        for record in batch:
            clip = existing.get(record.clip_id)
            if clip is not None:
                self._apply_mutable_fields(clip, record)
                result.updated += 1
                continue

            clip = self._insert(record)
            if clip is None:
                result.skipped += 1
                continue

            existing[record.clip_id] = clip
            result.inserted += 1

        return result

    def _load_existing(self, clip_ids: set[str]) -> dict[str, ClipModel]:
        rows = self.session.execute(
            select(ClipModel).where(
                ClipModel.channel == self.channel,
                ClipModel.clip_id.in_(clip_ids),
            )
        ).scalars()
        return {row.clip_id: row for row in rows}

    @staticmethod
    def _apply_mutable_fields(clip: ClipModel, record: ClipRecord) -> None:
        clip.view_count = record.view_count
        if record.title:
            clip.title = record.title
        if record.thumbnail_url:
            clip.thumbnail_url = record.thumbnail_url

    def _insert(self, record: ClipRecord) -> ClipModel | None:
        """Insert one clip inside a savepoint. Returns None if the row was rejected."""
        clip = ClipModel(
            channel=self.channel,
            clip_id=record.clip_id,
            seq=self.next_seq,
            title=record.title,
            duration=record.duration,
            created_at=record.created_at,
            view_count=record.view_count,
            game_id=record.game_id,
            creator_name=record.creator_name,
            thumbnail_url=record.thumbnail_url,
            video_id=record.video_id,
            vod_offset=record.vod_offset,
            url=record.url,
            blocked=False,
        )
        try:
            with self.session.begin_nested():
                self.session.add(clip)
        except SQLAlchemyError as e:
            logger.warning(
                "catalog_insert_skipped",
                channel=self.channel,
                clip_id=record.clip_id,
                seq=self.next_seq,
                error=str(getattr(e, "orig", None) or e),
            )
            # Another writer may have taken the number
            self.next_seq = max(self.next_seq, max_sequence(self.session, self.channel) + 1)
            return None

        self.next_seq += 1
        return clip
