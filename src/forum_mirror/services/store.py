"""Transactional store handle shared by the sync core and the HTTP layer.

Every public coroutine runs in its own transaction and commits on success, so
a run interrupted half way leaves only complete rows behind. The rank batch
path is the one operation spanning several rows; it commits all of them or
none.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from forum_mirror.db.session import create_engine_for, create_session_factory, create_tables
from forum_mirror.models import Channel, Post, Thread
from forum_mirror.repositories import (
    ChannelRepository,
    IntegrityViolationError,
    PostRepository,
    ThreadRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelRecord:
    """Normalised channel row ready for upsert."""

    id: int
    name: str
    slug: str
    description: str | None = None
    position: int = 0


@dataclass(frozen=True)
class ThreadRecord:
    """Normalised thread row ready for upsert."""

    id: int
    channel_id: int
    slug: str
    title: str
    author_alias: str
    body_html: str | None
    created_at: datetime
    tags: list[str] | None = field(default=None)


@dataclass(frozen=True)
class PostRecord:
    """Normalised post row ready for upsert."""

    id: int
    thread_id: int
    author_alias: str
    body_html: str
    created_at: datetime
    edited_at: datetime | None = None
    reply_to_id: int | None = None
    reply_to_author_alias: str | None = None


@dataclass(frozen=True)
class ThreadUpsertResult:
    """Outcome of a thread upsert."""

    thread: Thread
    created: bool


class ForumStore:
    """Explicitly constructed handle around the relational store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._channel_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> ForumStore:
        """Build a store with its own engine for ``url``."""
        engine = create_engine_for(url, echo=echo)
        return cls(create_session_factory(engine))

    @property
    def engine(self) -> AsyncEngine:
        """Return the engine the session factory is bound to."""
        return self.session_factory.kw["bind"]

    async def create_schema(self) -> None:
        """Create all tables on the bound engine."""
        await create_tables(self.engine)

    async def dispose(self) -> None:
        """Close pooled connections."""
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction that commits on exit."""
        async with self.session_factory.begin() as session:
            yield session

    def channel_lock(self, channel_id: int) -> asyncio.Lock:
        """Return the lock serialising rank writes for one channel."""
        return self._channel_locks[channel_id]

    # ------------------------------------------------------------------ channels

    async def upsert_channel(self, record: ChannelRecord) -> Channel:
        """Insert a channel or overwrite its name, description and position."""
        async with self.transaction() as session:
            channel, created = await ChannelRepository(session).upsert(
                channel_id=record.id,
                name=record.name,
                slug=record.slug,
                description=record.description,
                position=record.position,
            )
        logger.debug("%s channel %s (%s)", "Inserted" if created else "Updated", record.id, record.name)
        return channel

    async def get_channel(self, channel_id: int) -> Channel | None:
        async with self.transaction() as session:
            return await ChannelRepository(session).get_by_id(channel_id)

    async def get_channel_by_slug(self, slug: str) -> Channel | None:
        async with self.transaction() as session:
            return await ChannelRepository(session).get_by_slug(slug)

    async def list_channels(self) -> list[Channel]:
        async with self.transaction() as session:
            return await ChannelRepository(session).list_all()

    # ------------------------------------------------------------------- threads

    async def get_thread(self, thread_id: int) -> Thread | None:
        async with self.transaction() as session:
            return await ThreadRepository(session).get_by_id(thread_id)

    async def thread_exists(self, thread_id: int) -> bool:
        async with self.transaction() as session:
            return await ThreadRepository(session).exists(thread_id)

    async def list_threads(
        self,
        channel_id: int,
        *,
        include_unpublished: bool = False,
    ) -> list[Thread]:
        """Return a channel's threads in display order (rank, then creation time)."""
        async with self.transaction() as session:
            return await ThreadRepository(session).list_ranked(
                channel_id, include_unpublished=include_unpublished
            )

    async def max_rank(self, channel_id: int) -> int:
        async with self.transaction() as session:
            return await ThreadRepository(session).max_rank(channel_id)

    async def upsert_thread(
        self,
        record: ThreadRecord,
        *,
        rank: int | None = None,
    ) -> ThreadUpsertResult:
        """Insert a thread or update its content.

        An existing thread keeps its rank unless ``rank`` is given. A new
        thread without an explicit rank gets the channel's max rank + 1, read
        and written under the channel lock in a single transaction.

        Raises:
            IntegrityViolationError: If the thread's channel is not stored.
        """
        async with self.channel_lock(record.channel_id):
            async with self.transaction() as session:
                repo = ThreadRepository(session)
                thread = await repo.get_by_id(record.id)
                if thread is None:
                    if rank is None:
                        rank = await repo.max_rank(record.channel_id) + 1
                    thread = await repo.create(
                        thread_id=record.id,
                        channel_id=record.channel_id,
                        slug=record.slug,
                        title=record.title,
                        author_alias=record.author_alias,
                        body_html=record.body_html,
                        tags=record.tags,
                        created_at=record.created_at,
                        rank=rank,
                    )
                    created = True
                else:
                    await repo.update_content(
                        thread,
                        slug=record.slug,
                        title=record.title,
                        author_alias=record.author_alias,
                        body_html=record.body_html,
                        tags=record.tags,
                    )
                    if rank is not None:
                        thread.rank = rank
                        await session.flush()
                    created = False
        logger.debug(
            "%s thread %s in channel %s with rank %s",
            "Inserted" if created else "Updated",
            record.id,
            record.channel_id,
            thread.rank,
        )
        return ThreadUpsertResult(thread=thread, created=created)

    async def edit_thread(
        self,
        thread_id: int,
        *,
        title: str | None = None,
        body_html: str | None = None,
        author_alias: str | None = None,
    ) -> Thread:
        """Apply a staff edit to a thread's content without touching its rank.

        Raises:
            IntegrityViolationError: If the thread is not stored.
        """
        async with self.transaction() as session:
            repo = ThreadRepository(session)
            thread = await repo.get_by_id(thread_id)
            if thread is None:
                raise IntegrityViolationError("thread", thread_id)
            await repo.update_content(
                thread,
                slug=thread.slug,
                title=title if title is not None else thread.title,
                author_alias=author_alias if author_alias is not None else thread.author_alias,
                body_html=body_html if body_html is not None else thread.body_html,
                tags=thread.tags,
            )
            return thread

    async def set_published(self, thread_id: int, published: bool) -> Thread:
        """Publish or unpublish a thread."""
        async with self.transaction() as session:
            return await ThreadRepository(session).set_published(thread_id, published)

    async def apply_rank_updates(self, updates: Sequence[tuple[int, int]]) -> int:
        """Apply every ``(thread_id, rank)`` pair atomically.

        Returns:
            Number of threads updated.

        Raises:
            IntegrityViolationError: If any thread id is unknown; no rank is changed.
        """
        if not updates:
            return 0
        async with self.transaction() as session:
            await ThreadRepository(session).set_ranks(updates)
        logger.info("Applied %d rank updates", len(updates))
        return len(updates)

    async def refresh_reply_count(self, thread_id: int) -> int:
        """Recompute and store a thread's reply count.

        Raises:
            IntegrityViolationError: If the thread is not stored.
        """
        async with self.transaction() as session:
            repo = ThreadRepository(session)
            thread = await repo.get_by_id(thread_id)
            if thread is None:
                raise IntegrityViolationError("thread", thread_id)
            reply_count = await repo.count_replies(thread)
            await repo.set_reply_count(thread, reply_count)
            return reply_count

    # --------------------------------------------------------------------- posts

    async def get_post(self, post_id: int) -> Post | None:
        async with self.transaction() as session:
            return await PostRepository(session).get_by_id(post_id)

    async def post_exists(self, post_id: int) -> bool:
        return await self.get_post(post_id) is not None

    async def list_posts(self, thread_id: int) -> list[Post]:
        async with self.transaction() as session:
            return await PostRepository(session).list_for_thread(thread_id)

    async def upsert_post(self, record: PostRecord) -> Post:
        """Insert or update a post.

        Raises:
            IntegrityViolationError: If the owning thread is not stored.
        """
        async with self.transaction() as session:
            post, _ = await PostRepository(session).upsert(
                post_id=record.id,
                thread_id=record.thread_id,
                author_alias=record.author_alias,
                body_html=record.body_html,
                reply_to_id=record.reply_to_id,
                reply_to_author_alias=record.reply_to_author_alias,
                created_at=record.created_at,
                edited_at=record.edited_at,
            )
            return post

    async def link_reply_if_missing(self, post_id: int, target_id: int) -> Post | None:
        """Backfill the reply link of ``post_id`` when ``target_id`` is now stored.

        Returns:
            The updated post, or None when nothing changed.
        """
        if post_id == target_id:
            return None
        async with self.transaction() as session:
            repo = PostRepository(session)
            post = await repo.get_by_id(post_id)
            if post is None or post.reply_to_id is not None:
                return None
            target = await repo.get_by_id(target_id)
            if target is None:
                return None
            await repo.link_reply(post, target)
            return post
