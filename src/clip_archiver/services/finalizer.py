"""Finalizer: the steps that run once a channel's last window is committed.

1. Re-sequence the whole catalog chronologically
2. Resolve category names missing from the games cache
3. Provision the dashboard and bot-registration rows

Each step commits on its own, so a retry after a failure simply runs the
sequence again: re-sequencing is deterministic, metadata resolution only
fetches what is still missing, and provisioning treats existing rows as done.
"""

import secrets
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clip_archiver.adapters.clips.base import ClipsAdapter, ClipsAPIError
from clip_archiver.config import settings
from clip_archiver.db.models import (
    ArchiveJobModel,
    BotChannelModel,
    ChannelSettingsModel,
    ClipModel,
    GameCacheModel,
    StreamerModel,
)
from clip_archiver.domain.enums import ArchiveStatus
from clip_archiver.domain.models import GameInfo, as_utc
from clip_archiver.logging import get_logger
from clip_archiver.services import ledger
from clip_archiver.services.catalog import clip_count

logger = get_logger(__name__)

PROVISIONED_BY = "archive"


def resequence(session: Session, channel: str) -> int:
    """Renumber a channel's catalog ``1..N`` by creation time, in one transaction.

    Sequences are first moved out of the positive range (``seq = -id``) so the
    reassignment never collides with a number still held by another row.

    Returns:
        Number of rows renumbered.
    """
    session.execute(
        update(ClipModel)
        .where(ClipModel.channel == channel)
        .values(seq=-ClipModel.id)
        .execution_options(synchronize_session=False)
    )
    session.flush()

    ids = (
        session.execute(
            select(ClipModel.id)
            .where(ClipModel.channel == channel)
            .order_by(ClipModel.created_at.asc().nulls_last(), ClipModel.clip_id)
        )
        .scalars()
        .all()
    )
    if ids:
        session.execute(
            update(ClipModel),
            [{"id": pk, "seq": seq} for seq, pk in enumerate(ids, start=1)],
        )
    session.commit()

    logger.info("catalog_resequenced", channel=channel, clips=len(ids))
    return len(ids)


def cache_games(session: Session, games: dict[str, GameInfo], now: datetime) -> int:
    """Add or rename games in the cache. Does not commit."""
    for game in games.values():
        row = session.get(GameCacheModel, game.game_id)
        if row is None:
            session.add(
                GameCacheModel(
                    game_id=game.game_id,
                    name=game.name,
                    box_art_url=game.box_art_url,
                    fetched_at=now,
                )
            )
        else:
            row.name = game.name
            row.box_art_url = game.box_art_url
            row.fetched_at = now
    return len(games)


def missing_game_ids(session: Session, channel: str) -> list[str]:
    """Category ids referenced by the channel's catalog that have no cache entry."""
    rows = session.execute(
        select(ClipModel.game_id)
        .distinct()
        .outerjoin(GameCacheModel, GameCacheModel.game_id == ClipModel.game_id)
        .where(
            ClipModel.channel == channel,
            ClipModel.game_id.is_not(None),
            ClipModel.game_id != "",
            GameCacheModel.game_id.is_(None),
        )
        .order_by(ClipModel.game_id)
    ).scalars()
    return list(rows)


async def resolve_missing_games(
    session: Session,
    adapter: ClipsAdapter,
    channel: str,
    batch_size: int | None = None,
    now: datetime | None = None,
) -> int:
    """Fetch and cache the names of the channel's unresolved categories.

    A failed batch is logged and left unresolved; later runs retry it.

    Returns:
        Number of games added to or refreshed in the cache.
    """
    batch_size = min(batch_size or settings.metadata_batch_size, 100)
    now = now or datetime.now(UTC)
    missing = missing_game_ids(session, channel)
    if not missing:
        return 0

    resolved = 0
    for offset in range(0, len(missing), batch_size):
        batch = missing[offset : offset + batch_size]
        try:
            games = await adapter.get_games(batch)
        except ClipsAPIError as e:
            logger.warning(
                "games_batch_unresolved",
                channel=channel,
                batch_size=len(batch),
                error=str(e),
            )
            continue
        resolved += cache_games(session, games, now)
        session.commit()

    logger.info(
        "games_resolved",
        channel=channel,
        missing=len(missing),
        resolved=resolved,
    )
    return resolved


class Finalizer:
    """Runs the finalization steps for one channel's archive job."""

    def __init__(
        self,
        session: Session,
        adapter: ClipsAdapter,
        channel: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.channel = channel
        self.clock = clock or (lambda: datetime.now(UTC))

    def resequence(self) -> int:
        return resequence(self.session, self.channel)

    async def resolve_metadata(self) -> int:
        return await resolve_missing_games(
            self.session, self.adapter, self.channel, now=self.clock()
        )

    def provision(self, last_refresh: datetime | None = None) -> bool:
        """Create the downstream rows for a non-empty catalog.

        Returns:
            False if the catalog is empty and nothing was provisioned.
        """
        if clip_count(self.session, self.channel) == 0:
            logger.info("provisioning_skipped_empty_catalog", channel=self.channel)
            return False

        created = []
        if self.session.get(StreamerModel, self.channel) is None:
            streamer = StreamerModel(channel=self.channel, streamer_key=secrets.token_hex(16))
            if self._insert(streamer):
                created.append("streamer")

        bot = self.session.execute(
            select(BotChannelModel).where(BotChannelModel.channel == self.channel)
        ).scalar_one_or_none()
        if bot is None:
            row = BotChannelModel(channel=self.channel, added_by=PROVISIONED_BY, active=False)
            if self._insert(row):
                created.append("bot_channel")

        channel_settings = self.session.get(ChannelSettingsModel, self.channel)
        if channel_settings is None:
            row = ChannelSettingsModel(channel=self.channel, last_refresh=last_refresh)
            if self._insert(row):
                created.append("channel_settings")
        elif channel_settings.last_refresh is None:
            channel_settings.last_refresh = last_refresh

        self.session.commit()
        logger.info("channel_provisioned", channel=self.channel, created=created)
        return True

    def _insert(self, row: object) -> bool:
        """Insert a provisioning row; a concurrent insert of the same row is success."""
        try:
            with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            logger.info(
                "provisioning_row_exists",
                channel=self.channel,
                table=type(row).__tablename__,
            )
            return False
        return True

    async def run(self, job: ArchiveJobModel) -> None:
        """Run every step and mark the job complete.

        Exceptions propagate; the caller records them in the ledger.
        """
        logger.info("finalize_started", channel=self.channel)
        ledger.set_status(self.session, job, ArchiveStatus.RESOLVING_METADATA, self.clock())

        renumbered = self.resequence()
        resolved = await self.resolve_metadata()
        provisioned = self.provision(last_refresh=as_utc(job.archive_end))

        ledger.set_status(self.session, job, ArchiveStatus.COMPLETE, self.clock())
        logger.info(
            "finalize_completed",
            channel=self.channel,
            clips=renumbered,
            games_resolved=resolved,
            provisioned=provisioned,
        )
