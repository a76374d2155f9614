"""Source-platform abstractions consumed by the sync core.

The sync core talks to a :class:`ForumSource`; the Discord implementation lives
in :mod:`forum_mirror.services.discord_source` and tests use an in-memory one.
Pagination is exposed as lazy async iterators over pages, restartable from any
``before`` cursor.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_PAGE_DELAY_SECONDS = 0.1


class SourceError(RuntimeError):
    """Base exception raised for source-platform failures."""


class SourceNotFoundError(SourceError, LookupError):
    """Raised when a guild, channel, thread or message does not exist upstream."""

    def __init__(self, kind: str, object_id: int) -> None:
        self.kind = kind
        self.object_id = object_id
        super().__init__(f"{kind} {object_id} not found")


class SourceFetchError(SourceError):
    """Raised for transient failures such as network errors or rate limiting."""


@dataclass(frozen=True)
class SourceTag:
    """A tag from a forum channel's tag catalogue."""

    id: int
    name: str


@dataclass(frozen=True)
class SourceGuild:
    """A guild (server) visible to the source client."""

    id: int
    name: str


@dataclass(frozen=True)
class SourceChannel:
    """A forum-type channel."""

    id: int
    guild_id: int
    name: str
    topic: str | None = None
    position: int = 0
    available_tags: tuple[SourceTag, ...] = ()


@dataclass(frozen=True)
class SourceThread:
    """A forum post thread."""

    id: int
    channel_id: int
    name: str
    created_at: datetime
    applied_tag_ids: tuple[int, ...] = ()
    owner_id: int | None = None
    archived: bool = False


@dataclass(frozen=True)
class SourceMessage:
    """A message inside a thread."""

    id: int
    channel_id: int
    author_id: int
    content: str
    created_at: datetime
    author_is_bot: bool = False
    edited_at: datetime | None = None
    attachment_urls: tuple[str, ...] = ()
    reference_id: int | None = None


@dataclass(frozen=True)
class ThreadPage:
    """One page of archived threads.

    ``next_before`` is the source's cursor for the following page, or None
    when this was the last one.
    """

    threads: Sequence[SourceThread] = field(default_factory=tuple)
    next_before: datetime | None = None


class ForumSource(Protocol):
    """Operations the sync core needs from the source platform.

    Lookups raise :class:`SourceNotFoundError` for missing objects and
    :class:`SourceFetchError` for transient failures.
    """

    async def list_guilds(self) -> list[SourceGuild]: ...

    async def get_guild(self, guild_id: int) -> SourceGuild: ...

    async def list_forum_channels(self, guild_id: int) -> list[SourceChannel]: ...

    async def get_channel(self, channel_id: int) -> SourceChannel: ...

    async def get_thread(self, thread_id: int) -> SourceThread: ...

    async def fetch_active_threads(self, channel_id: int) -> list[SourceThread]: ...

    async def fetch_archived_threads(
        self,
        channel_id: int,
        *,
        limit: int,
        before: datetime | None = None,
    ) -> ThreadPage: ...

    async def fetch_starter_message(self, thread_id: int) -> SourceMessage: ...

    async def fetch_message(self, thread_id: int, message_id: int) -> SourceMessage: ...

    async def fetch_messages(
        self,
        thread_id: int,
        *,
        limit: int,
        before: int | None = None,
    ) -> list[SourceMessage]: ...


def resolve_tag_names(thread: SourceThread, channel: SourceChannel | None) -> list[str] | None:
    """Map a thread's applied tag ids to names using the channel catalogue.

    Unknown ids fall back to their string form; a thread without tags yields None.
    """
    if not thread.applied_tag_ids:
        return None
    catalogue = {tag.id: tag.name for tag in (channel.available_tags if channel else ())}
    return [catalogue.get(tag_id, str(tag_id)) for tag_id in thread.applied_tag_ids]


class MessagePager:
    """Lazy, finite sequence of message pages walking backwards through a thread.

    Each page is fetched with a ``before`` cursor set to the oldest message of
    the previous page. Iteration ends on an empty page, on a page older than
    ``stop_before`` (delta syncs), or on a transient fetch error, which is
    logged. A fixed delay between page fetches keeps the source API happy.
    """

    def __init__(
        self,
        source: ForumSource,
        thread_id: int,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        before: int | None = None,
        stop_before: datetime | None = None,
    ) -> None:
        self.source = source
        self.thread_id = thread_id
        self.page_size = page_size
        self.delay = delay
        self.cursor = before
        self.stop_before = stop_before
        self.pages_fetched = 0
        self.failed = False

    def __aiter__(self) -> AsyncIterator[list[SourceMessage]]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[list[SourceMessage]]:
        while True:
            if self.pages_fetched and self.delay:
                await asyncio.sleep(self.delay)
            try:
                page = await self.source.fetch_messages(
                    self.thread_id, limit=self.page_size, before=self.cursor
                )
            except SourceFetchError as exc:
                self.failed = True
                logger.warning(
                    "Failed to fetch messages for thread %s before %s, stopping: %s",
                    self.thread_id,
                    self.cursor,
                    exc,
                )
                return
            self.pages_fetched += 1
            if not page:
                return

            self.cursor = min(message.id for message in page)
            if self.stop_before is not None:
                fresh = [m for m in page if m.created_at > self.stop_before]
                if fresh:
                    yield fresh
                if len(fresh) < len(page):
                    return
                continue
            yield page

    async def collect(self) -> list[SourceMessage]:
        """Drain the pager and return every message, de-duplicated by id."""
        seen: dict[int, SourceMessage] = {}
        async for page in self:
            for message in page:
                seen.setdefault(message.id, message)
        return list(seen.values())


class ArchivedThreadPager:
    """Lazy sequence of archived-thread pages for one channel."""

    def __init__(
        self,
        source: ForumSource,
        channel_id: int,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        delay: float = DEFAULT_PAGE_DELAY_SECONDS,
        before: datetime | None = None,
        limit: int | None = None,
    ) -> None:
        self.source = source
        self.channel_id = channel_id
        self.page_size = page_size
        self.delay = delay
        self.cursor = before
        self.limit = limit
        self.pages_fetched = 0

    def __aiter__(self) -> AsyncIterator[list[SourceThread]]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[list[SourceThread]]:
        remaining = self.limit
        while remaining is None or remaining > 0:
            if self.pages_fetched and self.delay:
                await asyncio.sleep(self.delay)
            size = self.page_size if remaining is None else min(self.page_size, remaining)
            try:
                page = await self.source.fetch_archived_threads(
                    self.channel_id, limit=size, before=self.cursor
                )
            except SourceFetchError as exc:
                logger.warning(
                    "Failed to fetch archived threads for channel %s, stopping: %s",
                    self.channel_id,
                    exc,
                )
                return
            self.pages_fetched += 1
            threads = list(page.threads)
            if not threads:
                return
            yield threads
            if remaining is not None:
                remaining -= len(threads)
            if page.next_before is None:
                return
            self.cursor = page.next_before
