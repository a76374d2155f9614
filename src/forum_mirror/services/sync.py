"""Sync orchestrator: mirrors forum channels from the source into the store.

A run is either *full* (forced, or the first run ever) or *delta* (everything
since the last successful run). Both walk the channels registered in the
store, thread by thread and message by message, strictly sequentially. A
failure on one thread or message is logged and counted and the walk moves on;
failing to find the requested guild, channel or thread ends the run.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from forum_mirror.db.time import as_utc, utcnow
from forum_mirror.repositories import IntegrityViolationError
from forum_mirror.services.content import ContentTransformer, slugify_channel_name, slugify_title
from forum_mirror.services.ranking import RankOrder, rank_for_position
from forum_mirror.services.replies import ReplyResolver
from forum_mirror.services.source import (
    DEFAULT_PAGE_DELAY_SECONDS,
    DEFAULT_PAGE_SIZE,
    ArchivedThreadPager,
    ForumSource,
    MessagePager,
    SourceChannel,
    SourceError,
    SourceMessage,
    SourceNotFoundError,
    SourceThread,
    resolve_tag_names,
)
from forum_mirror.services.store import ChannelRecord, ForumStore, PostRecord, ThreadRecord
from forum_mirror.services.sync_state import DEFAULT_LOCK_TTL, SyncLockError, SyncStateStore
from forum_mirror.utils.hash import DEFAULT_ALIAS_LENGTH, StaffDirectory

logger = logging.getLogger(__name__)

# Errors that only spoil the item being processed.
ITEM_ERRORS = (SourceError, IntegrityViolationError, SQLAlchemyError)


class SyncMode(str, enum.Enum):
    FULL = "full"
    DELTA = "delta"


@dataclass(frozen=True)
class SyncOptions:
    """What a run should cover.

    At most one of ``guild_id``, ``channel_id`` and ``thread_id`` is expected;
    the narrowest one wins. With none set, every registered channel is walked.
    """

    guild_id: int | None = None
    channel_id: int | None = None
    thread_id: int | None = None
    force_full: bool = False
    skip_existing: bool = False
    archived_limit: int | None = None

    @property
    def is_scoped(self) -> bool:
        return self.channel_id is not None or self.thread_id is not None


@dataclass
class SyncStats:
    """Counters for one run."""

    mode: SyncMode | None = None
    guilds_processed: int = 0
    channels_processed: int = 0
    threads_processed: int = 0
    posts_processed: int = 0
    replies_healed: int = 0
    errors_encountered: int = 0
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    @property
    def duration(self) -> timedelta | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> dict:
        data = asdict(self)
        data["mode"] = self.mode.value if self.mode else None
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        duration = self.duration
        data["duration_seconds"] = duration.total_seconds() if duration is not None else None
        return data


class SyncOrchestrator:
    """Walk the source and write channels, threads and posts to the store."""

    def __init__(
        self,
        store: ForumStore,
        source: ForumSource,
        transformer: ContentTransformer | None = None,
        *,
        alias_salt: str = "",
        alias_length: int = DEFAULT_ALIAS_LENGTH,
        staff: StaffDirectory | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        archived_page_size: int = DEFAULT_PAGE_SIZE,
        page_delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        rank_order: RankOrder = RankOrder.OLDEST_FIRST,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.source = source
        self.transformer = transformer or ContentTransformer()
        self.alias_salt = alias_salt
        self.alias_length = alias_length
        self.staff = staff or StaffDirectory()
        self.page_size = page_size
        self.archived_page_size = archived_page_size
        self.page_delay = page_delay
        self.rank_order = rank_order
        self.clock = clock
        self.state = SyncStateStore(store, lock_ttl=lock_ttl, clock=clock)
        self.replies = ReplyResolver(store, source, self.alias_for)
        self._lock_token: str | None = None

    def alias_for(self, user_id: int) -> str:
        return self.staff.alias_for(user_id, salt=self.alias_salt, length=self.alias_length)

    def _new_stats(self, mode: SyncMode | None = None) -> SyncStats:
        return SyncStats(mode=mode, started_at=self.clock())

    def _finish(self, stats: SyncStats) -> SyncStats:
        stats.finished_at = self.clock()
        logger.info(
            "Sync (%s) finished: %d channels, %d threads, %d posts, %d replies healed, "
            "%d errors in %.1fs",
            stats.mode.value if stats.mode else "scoped",
            stats.channels_processed,
            stats.threads_processed,
            stats.posts_processed,
            stats.replies_healed,
            stats.errors_encountered,
            stats.duration.total_seconds(),
        )
        return stats

    # ---------------------------------------------------------------- entry point

    async def run(self, options: SyncOptions | None = None) -> SyncStats:
        """Run one sync under the run lock and return its statistics.

        The recorded sync state decides between full and delta mode. It is
        only advanced after an unscoped run completes, so a failed run is
        retried in the same mode next time.

        Raises:
            SyncLockError: If another run holds the lock.
            SourceNotFoundError: If the requested guild, channel or thread
                does not exist upstream.
        """
        options = options or SyncOptions()
        async with self.state.run_lock() as token:
            self._lock_token = token
            try:
                stats = await self._run_locked(options)
            finally:
                self._lock_token = None
        return self._finish(stats)

    async def _run_locked(self, options: SyncOptions) -> SyncStats:
        snapshot = await self.state.read()
        mode = SyncMode.FULL if options.force_full or snapshot.is_first_run else SyncMode.DELTA
        since = None if mode is SyncMode.FULL else snapshot.last_sync
        stats = self._new_stats(mode)
        logger.info(
            "Starting %s sync%s",
            mode.value,
            "" if since is None else f" since {since.isoformat()}",
        )
        walk = {
            "mode": mode,
            "since": since,
            "skip_existing": options.skip_existing,
            "archived_limit": options.archived_limit,
            "stats": stats,
        }
        record_state = not options.is_scoped

        if options.thread_id is not None:
            await self.sync_thread(options.thread_id, skip_existing=options.skip_existing, stats=stats)
        elif options.channel_id is not None:
            await self.sync_channel(options.channel_id, **walk)
        elif options.guild_id is not None:
            await self.sync_guild(options.guild_id, **walk)
        elif await self.store.list_channels():
            await self.sync_registered(**walk)
        else:
            # Nothing was walked, so the next run must still be a full one.
            logger.warning("No channels registered; sync a guild or channel to register some")
            record_state = False

        if record_state:
            await self.state.mark_success(stats.started_at)
        return stats

    async def _keep_lock(self) -> None:
        """Refresh the run lock so a long run is not mistaken for an abandoned one.

        Raises:
            SyncLockError: If another run has taken the lock over.
        """
        if self._lock_token is None:
            return
        if not await self.state.refresh_lock(self._lock_token):
            raise SyncLockError("Sync lock was taken over by another run; aborting")

    # -------------------------------------------------------------------- scopes

    async def sync_registered(
        self,
        *,
        mode: SyncMode = SyncMode.FULL,
        since: datetime | None = None,
        skip_existing: bool = False,
        archived_limit: int | None = None,
        stats: SyncStats | None = None,
    ) -> SyncStats:
        """Walk every channel already registered in the store."""
        stats = stats or self._new_stats(mode)
        channels = await self.store.list_channels()
        logger.info("Found %d registered channels", len(channels))
        for channel in channels:
            try:
                source_channel = await self.source.get_channel(channel.id)
                await self._walk_channel(
                    source_channel,
                    mode=mode,
                    since=since,
                    skip_existing=skip_existing,
                    archived_limit=archived_limit,
                    stats=stats,
                )
            except ITEM_ERRORS as exc:
                stats.errors_encountered += 1
                logger.error(
                    "Failed to sync channel %s (%s): %s", channel.id, channel.name, exc, exc_info=True
                )
        return stats

    async def sync_guild(
        self,
        guild_id: int,
        *,
        mode: SyncMode = SyncMode.FULL,
        since: datetime | None = None,
        skip_existing: bool = False,
        archived_limit: int | None = None,
        stats: SyncStats | None = None,
    ) -> SyncStats:
        """Discover and walk every forum channel of a guild.

        Raises:
            SourceNotFoundError: If the guild does not exist upstream.
        """
        stats = stats or self._new_stats(mode)
        guild = await self.source.get_guild(guild_id)
        channels = await self.source.list_forum_channels(guild.id)
        logger.info("Syncing guild %s (%s): %d forum channels", guild.id, guild.name, len(channels))
        stats.guilds_processed += 1
        for channel in sorted(channels, key=lambda c: (c.position, c.id)):
            try:
                await self._walk_channel(
                    channel,
                    mode=mode,
                    since=since,
                    skip_existing=skip_existing,
                    archived_limit=archived_limit,
                    stats=stats,
                )
            except ITEM_ERRORS as exc:
                stats.errors_encountered += 1
                logger.error(
                    "Failed to sync channel %s (%s): %s", channel.id, channel.name, exc, exc_info=True
                )
        return stats

    async def sync_channel(
        self,
        channel_id: int,
        *,
        mode: SyncMode = SyncMode.FULL,
        since: datetime | None = None,
        skip_existing: bool = False,
        archived_limit: int | None = None,
        stats: SyncStats | None = None,
    ) -> SyncStats:
        """Register or refresh one channel and walk its threads.

        Raises:
            SourceNotFoundError: If the channel does not exist upstream.
        """
        stats = stats or self._new_stats(mode)
        channel = await self.source.get_channel(channel_id)
        await self._walk_channel(
            channel,
            mode=mode,
            since=since,
            skip_existing=skip_existing,
            archived_limit=archived_limit,
            stats=stats,
        )
        return stats

    async def sync_thread(
        self,
        thread_id: int,
        *,
        skip_existing: bool = False,
        stats: SyncStats | None = None,
    ) -> SyncStats:
        """Sync one thread; a new thread is ranked after the channel's last one.

        Raises:
            SourceNotFoundError: If the thread or its channel does not exist upstream.
        """
        stats = stats or self._new_stats()
        thread = await self.source.get_thread(thread_id)
        if skip_existing and await self.store.thread_exists(thread.id):
            logger.info("Thread %s already stored, skipping", thread.id)
            return stats
        channel = await self.source.get_channel(thread.channel_id)
        if await self.store.get_channel(channel.id) is None:
            await self._register_channel(channel)
        await self._sync_thread_guarded(thread, channel, stats=stats)
        return stats

    # ------------------------------------------------------------------- helpers

    async def _register_channel(self, channel: SourceChannel) -> None:
        await self.store.upsert_channel(
            ChannelRecord(
                id=channel.id,
                name=channel.name,
                slug=slugify_channel_name(channel.name) or str(channel.id),
                description=channel.topic,
                position=channel.position,
            )
        )

    async def _list_threads(
        self,
        channel_id: int,
        *,
        archived_limit: int | None,
    ) -> list[SourceThread]:
        """Return active and archived threads, oldest first."""
        found: dict[int, SourceThread] = {
            thread.id: thread for thread in await self.source.fetch_active_threads(channel_id)
        }
        pager = ArchivedThreadPager(
            self.source,
            channel_id,
            page_size=self.archived_page_size,
            delay=self.page_delay,
            limit=archived_limit,
        )
        async for page in pager:
            for thread in page:
                found.setdefault(thread.id, thread)
        return sorted(found.values(), key=lambda t: (as_utc(t.created_at), t.id))

    async def _walk_channel(
        self,
        channel: SourceChannel,
        *,
        mode: SyncMode,
        since: datetime | None,
        skip_existing: bool,
        archived_limit: int | None,
        stats: SyncStats,
    ) -> None:
        await self._keep_lock()
        await self._register_channel(channel)
        threads = await self._list_threads(channel.id, archived_limit=archived_limit)
        logger.info(
            "Channel %s (%s): %d threads upstream", channel.id, channel.name, len(threads)
        )

        total = len(threads)
        for index, thread in enumerate(threads):
            await self._keep_lock()
            if skip_existing and await self.store.thread_exists(thread.id):
                logger.debug("Thread %s already stored, skipping", thread.id)
                continue

            if mode is SyncMode.FULL:
                await self._sync_thread_guarded(
                    thread,
                    channel,
                    rank=rank_for_position(index, total, self.rank_order),
                    stats=stats,
                )
            elif since is None or as_utc(thread.created_at) > since:
                await self._sync_thread_guarded(thread, channel, stats=stats)
            elif await self.store.thread_exists(thread.id):
                await self._sync_thread_guarded(thread, channel, messages_since=since, stats=stats)
            else:
                # Older than the last run yet never stored; treat as new.
                await self._sync_thread_guarded(thread, channel, stats=stats)
        stats.channels_processed += 1

    async def _sync_thread_guarded(
        self,
        thread: SourceThread,
        channel: SourceChannel | None,
        *,
        rank: int | None = None,
        messages_since: datetime | None = None,
        stats: SyncStats,
    ) -> None:
        try:
            await self._sync_thread(
                thread, channel, rank=rank, messages_since=messages_since, stats=stats
            )
        except ITEM_ERRORS as exc:
            stats.errors_encountered += 1
            logger.error(
                "Failed to sync thread %s (%s): %s", thread.id, thread.name, exc, exc_info=True
            )

    async def _upsert_thread(
        self,
        thread: SourceThread,
        channel: SourceChannel | None,
        starter: SourceMessage,
        *,
        rank: int | None,
    ) -> bool:
        body_html = await self.transformer.render(starter.content, starter.attachment_urls)
        result = await self.store.upsert_thread(
            ThreadRecord(
                id=thread.id,
                channel_id=thread.channel_id,
                slug=slugify_title(thread.name) or str(thread.id),
                title=thread.name,
                author_alias=self.alias_for(starter.author_id),
                body_html=body_html,
                created_at=thread.created_at,
                tags=resolve_tag_names(thread, channel),
            ),
            rank=rank,
        )
        return result.created

    async def _sync_thread(
        self,
        thread: SourceThread,
        channel: SourceChannel | None,
        *,
        rank: int | None,
        messages_since: datetime | None,
        stats: SyncStats,
    ) -> bool:
        """Sync a thread's starter and messages.

        With ``messages_since`` the thread is already stored: its title, body
        and tags are left as they are and only newer messages are pulled.

        Returns:
            False when the thread was skipped (bot or missing starter).
        """
        # The starter message shares the thread's id.
        skip_ids = {thread.id}
        created = False
        if messages_since is None:
            try:
                starter = await self.source.fetch_starter_message(thread.id)
            except SourceError as exc:
                logger.warning(
                    "Skipping thread %s (%s): no starter message: %s", thread.id, thread.name, exc
                )
                return False
            if starter.author_is_bot:
                logger.debug("Skipping thread %s (%s): started by a bot", thread.id, thread.name)
                return False
            skip_ids.add(starter.id)
            created = await self._upsert_thread(thread, channel, starter, rank=rank)

        pager = MessagePager(
            self.source,
            thread.id,
            page_size=self.page_size,
            delay=self.page_delay,
            stop_before=messages_since,
        )
        messages = [
            message
            for message in await pager.collect()
            if message.id not in skip_ids and not message.author_is_bot
        ]
        messages.sort(key=lambda m: (as_utc(m.created_at), m.id))

        stored = await self._ingest_messages(thread, messages, stats)
        stats.replies_healed += await self.replies.heal(stored)
        reply_count = await self.store.refresh_reply_count(thread.id)
        stats.threads_processed += 1
        logger.info(
            "%s thread %s (%s): %d posts, %d replies",
            "Created" if created else "Updated",
            thread.id,
            thread.name,
            len(stored),
            reply_count,
        )
        return True

    async def _ingest_messages(
        self,
        thread: SourceThread,
        messages: Iterable[SourceMessage],
        stats: SyncStats,
    ) -> list[SourceMessage]:
        stored: list[SourceMessage] = []
        for message in messages:
            try:
                await self._upsert_post(thread.id, message)
            except ITEM_ERRORS as exc:
                stats.errors_encountered += 1
                logger.error(
                    "Failed to sync message %s in thread %s: %s",
                    message.id,
                    thread.id,
                    exc,
                    exc_info=True,
                )
                continue
            stored.append(message)
            stats.posts_processed += 1
        return stored

    async def _upsert_post(self, thread_id: int, message: SourceMessage) -> None:
        body_html = await self.transformer.render(message.content, message.attachment_urls)
        link = await self.replies.resolve(message)
        await self.store.upsert_post(
            PostRecord(
                id=message.id,
                thread_id=thread_id,
                author_alias=self.alias_for(message.author_id),
                body_html=body_html,
                created_at=message.created_at,
                edited_at=message.edited_at,
                reply_to_id=link.reply_to_id,
                reply_to_author_alias=link.reply_to_author_alias,
            )
        )

    # -------------------------------------------------------------- live events

    async def handle_thread_event(self, thread_id: int) -> SyncStats:
        """React to a thread being created or updated upstream."""
        return self._finish(await self.sync_thread(thread_id))

    async def handle_message_event(self, message_id: int, thread_id: int) -> SyncStats:
        """React to a message being created or edited upstream.

        A message in a thread that is not stored yet pulls in the whole thread;
        an edited starter message refreshes the thread body.
        """
        if not await self.store.thread_exists(thread_id):
            return await self.handle_thread_event(thread_id)

        stats = self._new_stats()
        thread = await self.source.get_thread(thread_id)
        message = await self.source.fetch_message(thread_id, message_id)
        if message.author_is_bot:
            logger.debug("Ignoring bot message %s in thread %s", message_id, thread_id)
            return self._finish(stats)

        if message.id == thread.id:
            channel = await self.source.get_channel(thread.channel_id)
            await self._upsert_thread(thread, channel, message, rank=None)
            stats.threads_processed += 1
            return self._finish(stats)

        stored = await self._ingest_messages(thread, [message], stats)
        stats.replies_healed += await self.replies.heal(stored)
        await self.store.refresh_reply_count(thread_id)
        return self._finish(stats)
