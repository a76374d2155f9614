"""Data access helpers for working with threads."""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from forum_mirror.db.time import utcnow
from forum_mirror.models.channel import Channel
from forum_mirror.models.post import Post
from forum_mirror.models.thread import Thread
from forum_mirror.repositories.errors import IntegrityViolationError

__all__ = ["ThreadRepository"]


class ThreadRepository:
    """Thin wrapper around database access for thread entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with an async SQLAlchemy session."""
        self.session = session

    async def get_by_id(self, thread_id: int) -> Thread | None:
        """Return a thread by identifier."""
        return await self.session.get(Thread, thread_id)

    async def exists(self, thread_id: int) -> bool:
        """Return True when a thread with ``thread_id`` is stored."""
        result = await self.session.execute(select(Thread.id).where(Thread.id == thread_id))
        return result.scalar_one_or_none() is not None

    async def max_rank(self, channel_id: int) -> int:
        """Return the highest rank in a channel, treating an empty channel as 0."""
        result = await self.session.execute(
            select(func.coalesce(func.max(Thread.rank), 0)).where(
                Thread.channel_id == channel_id,
                Thread.rank.is_not(None),
            )
        )
        return int(result.scalar_one())

    async def list_for_channel(
        self,
        channel_id: int,
        *,
        newest_first: bool = False,
        include_unpublished: bool = True,
    ) -> list[Thread]:
        """Return a channel's threads ordered by creation time (ties by id)."""
        stmt = select(Thread).where(Thread.channel_id == channel_id)
        if not include_unpublished:
            stmt = stmt.where(Thread.published.is_(True))
        if newest_first:
            stmt = stmt.order_by(Thread.created_at.desc(), Thread.id.desc())
        else:
            stmt = stmt.order_by(Thread.created_at.asc(), Thread.id.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_ranked(self, channel_id: int, *, include_unpublished: bool = False) -> list[Thread]:
        """Return a channel's threads sorted by rank, ties broken by creation time."""
        stmt = select(Thread).where(Thread.channel_id == channel_id)
        if not include_unpublished:
            stmt = stmt.where(Thread.published.is_(True))
        stmt = stmt.order_by(
            Thread.rank.is_(None),
            Thread.rank.asc(),
            Thread.created_at.asc(),
            Thread.id.asc(),
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_unranked(self, channel_id: int) -> list[Thread]:
        """Return threads without a rank, oldest first."""
        result = await self.session.execute(
            select(Thread)
            .where(Thread.channel_id == channel_id, Thread.rank.is_(None))
            .order_by(Thread.created_at.asc(), Thread.id.asc())
        )
        return list(result.scalars())

    async def channels_with_unranked(self) -> list[int]:
        """Return ids of channels holding at least one thread without a rank."""
        result = await self.session.execute(
            select(Thread.channel_id).where(Thread.rank.is_(None)).distinct()
        )
        return [int(row) for row in result.scalars()]

    async def create(
        self,
        *,
        thread_id: int,
        channel_id: int,
        slug: str,
        title: str,
        author_alias: str,
        body_html: str | None,
        tags: list[str] | None,
        created_at: datetime,
        rank: int | None,
    ) -> Thread:
        """Insert a new thread and return the persisted ORM instance.

        Raises:
            IntegrityViolationError: If the owning channel is not stored.
        """
        if await self.session.get(Channel, channel_id) is None:
            raise IntegrityViolationError("channel", channel_id, f"thread {thread_id} references it")
        thread = Thread(
            id=thread_id,
            channel_id=channel_id,
            slug=slug,
            title=title,
            author_alias=author_alias,
            body_html=body_html,
            tags=tags,
            reply_count=0,
            rank=rank,
            published=True,
            created_at=created_at,
            updated_at=utcnow(),
        )
        self.session.add(thread)
        await self.session.flush()
        return thread

    async def update_content(
        self,
        thread: Thread,
        *,
        slug: str,
        title: str,
        author_alias: str,
        body_html: str | None,
        tags: list[str] | None,
    ) -> Thread:
        """Overwrite the content columns of ``thread``; rank is left untouched."""
        thread.slug = slug
        thread.title = title
        thread.author_alias = author_alias
        thread.body_html = body_html
        thread.tags = tags
        thread.updated_at = utcnow()
        await self.session.flush()
        return thread

    async def set_rank(self, thread_id: int, rank: int | None) -> None:
        """Write ``rank`` for one thread.

        Raises:
            IntegrityViolationError: If the thread is not stored.
        """
        result = await self.session.execute(
            update(Thread)
            .where(Thread.id == thread_id)
            .values(rank=rank, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise IntegrityViolationError("thread", thread_id)

    async def set_ranks(self, updates: Sequence[tuple[int, int]]) -> None:
        """Write every ``(thread_id, rank)`` pair, failing on the first unknown id."""
        for thread_id, rank in updates:
            await self.set_rank(thread_id, rank)

    async def count_replies(self, thread: Thread) -> int:
        """Count stored posts in ``thread`` that were not written by its author."""
        result = await self.session.execute(
            select(func.count(Post.id)).where(
                Post.thread_id == thread.id,
                Post.author_alias != thread.author_alias,
            )
        )
        return int(result.scalar_one())

    async def set_reply_count(self, thread: Thread, reply_count: int) -> None:
        """Persist the materialised reply count."""
        thread.reply_count = reply_count
        await self.session.flush()

    async def set_published(self, thread_id: int, published: bool) -> Thread:
        """Toggle the published flag.

        Raises:
            IntegrityViolationError: If the thread is not stored.
        """
        thread = await self.get_by_id(thread_id)
        if thread is None:
            raise IntegrityViolationError("thread", thread_id)
        thread.published = published
        thread.updated_at = utcnow()
        await self.session.flush()
        return thread
