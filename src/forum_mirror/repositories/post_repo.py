"""Data access helpers for working with posts."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from forum_mirror.db.time import utcnow
from forum_mirror.models.post import Post
from forum_mirror.models.thread import Thread
from forum_mirror.repositories.errors import IntegrityViolationError

__all__ = ["PostRepository"]


class PostRepository:
    """Thin wrapper around database access for post entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with an async SQLAlchemy session."""
        self.session = session

    async def get_by_id(self, post_id: int) -> Post | None:
        """Return a post by identifier."""
        return await self.session.get(Post, post_id)

    async def list_for_thread(self, thread_id: int) -> list[Post]:
        """Return a thread's posts in chronological order."""
        result = await self.session.execute(
            select(Post)
            .where(Post.thread_id == thread_id)
            .order_by(Post.created_at.asc(), Post.id.asc())
        )
        return list(result.scalars())

    async def upsert(
        self,
        *,
        post_id: int,
        thread_id: int,
        author_alias: str,
        body_html: str,
        reply_to_id: int | None,
        reply_to_author_alias: str | None,
        created_at: datetime,
        edited_at: datetime | None,
    ) -> tuple[Post, bool]:
        """Insert a post or update its body and reply link.

        A ``reply_to_id`` naming a post that is not stored is cleared together
        with its author alias.

        Raises:
            IntegrityViolationError: If the owning thread is not stored.
        """
        if await self.session.get(Thread, thread_id) is None:
            raise IntegrityViolationError("thread", thread_id, f"post {post_id} references it")

        if reply_to_id is not None and (
            reply_to_id == post_id or await self.get_by_id(reply_to_id) is None
        ):
            reply_to_id = None
            reply_to_author_alias = None

        post = await self.get_by_id(post_id)
        created = post is None
        if post is None:
            post = Post(
                id=post_id,
                thread_id=thread_id,
                author_alias=author_alias,
                created_at=created_at,
            )
            self.session.add(post)
        post.body_html = body_html
        post.reply_to_id = reply_to_id
        post.reply_to_author_alias = reply_to_author_alias
        post.updated_at = edited_at or created_at
        await self.session.flush()
        return post, created

    async def link_reply(self, post: Post, target: Post) -> None:
        """Point ``post`` at ``target`` and copy the target's alias."""
        post.reply_to_id = target.id
        post.reply_to_author_alias = target.author_alias
        post.updated_at = utcnow()
        await self.session.flush()
