"""Discord implementation of the forum source.

Wraps a logged-in ``discord.Client`` and converts discord.py objects into the
plain source dataclasses the sync core works with.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

import discord

from forum_mirror.services.source import (
    SourceChannel,
    SourceFetchError,
    SourceGuild,
    SourceMessage,
    SourceNotFoundError,
    SourceTag,
    SourceThread,
    ThreadPage,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _thread_created_at(thread: discord.Thread) -> datetime:
    # Threads created before 2022-01-09 carry no creation timestamp.
    return thread.created_at or discord.utils.snowflake_time(thread.id)


def to_source_channel(channel: discord.ForumChannel) -> SourceChannel:
    return SourceChannel(
        id=channel.id,
        guild_id=channel.guild.id,
        name=channel.name,
        topic=channel.topic,
        position=channel.position or 0,
        available_tags=tuple(SourceTag(id=tag.id, name=tag.name) for tag in channel.available_tags),
    )


def to_source_thread(thread: discord.Thread) -> SourceThread:
    return SourceThread(
        id=thread.id,
        channel_id=thread.parent_id,
        name=thread.name,
        created_at=_thread_created_at(thread),
        applied_tag_ids=tuple(tag.id for tag in thread.applied_tags),
        owner_id=thread.owner_id,
        archived=thread.archived,
    )


def to_source_message(message: discord.Message) -> SourceMessage:
    reference_id = message.reference.message_id if message.reference else None
    return SourceMessage(
        id=message.id,
        channel_id=message.channel.id,
        author_id=message.author.id,
        author_is_bot=message.author.bot,
        content=message.content or "",
        created_at=message.created_at,
        edited_at=message.edited_at,
        attachment_urls=tuple(attachment.url for attachment in message.attachments),
        reference_id=reference_id,
    )


class DiscordForumSource:
    """Forum source backed by discord.py."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _call(self, kind: str, object_id: int, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        except discord.NotFound as exc:
            raise SourceNotFoundError(kind, object_id) from exc
        except discord.HTTPException as exc:
            raise SourceFetchError(f"Discord request for {kind} {object_id} failed: {exc}") from exc

    async def list_guilds(self) -> list[SourceGuild]:
        guilds = self.client.guilds
        if not guilds:
            # HTTP-only clients never fill the gateway cache.
            async def _fetch() -> list[discord.Guild]:
                return [guild async for guild in self.client.fetch_guilds()]

            guilds = await self._call("guild", 0, _fetch)
        return [SourceGuild(id=guild.id, name=guild.name) for guild in guilds]

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            guild = await self._call("guild", guild_id, lambda: self.client.fetch_guild(guild_id))
        return guild

    async def get_guild(self, guild_id: int) -> SourceGuild:
        guild = await self._guild(guild_id)
        return SourceGuild(id=guild.id, name=guild.name)

    async def list_forum_channels(self, guild_id: int) -> list[SourceChannel]:
        guild = await self._guild(guild_id)
        channels = guild.channels or await self._call("guild", guild_id, guild.fetch_channels)
        return [
            to_source_channel(channel)
            for channel in channels
            if isinstance(channel, discord.ForumChannel)
        ]

    async def _forum_channel(self, channel_id: int) -> discord.ForumChannel:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self._call(
                "channel", channel_id, lambda: self.client.fetch_channel(channel_id)
            )
        if not isinstance(channel, discord.ForumChannel):
            raise SourceNotFoundError("forum channel", channel_id)
        return channel

    async def get_channel(self, channel_id: int) -> SourceChannel:
        return to_source_channel(await self._forum_channel(channel_id))

    async def _thread(self, thread_id: int) -> discord.Thread:
        thread = self.client.get_channel(thread_id)
        if thread is None:
            thread = await self._call(
                "thread", thread_id, lambda: self.client.fetch_channel(thread_id)
            )
        if not isinstance(thread, discord.Thread):
            raise SourceNotFoundError("thread", thread_id)
        return thread

    async def get_thread(self, thread_id: int) -> SourceThread:
        return to_source_thread(await self._thread(thread_id))

    async def fetch_active_threads(self, channel_id: int) -> list[SourceThread]:
        channel = await self._forum_channel(channel_id)
        threads = await self._call("guild", channel.guild.id, channel.guild.active_threads)
        return [to_source_thread(thread) for thread in threads if thread.parent_id == channel_id]

    async def fetch_archived_threads(
        self,
        channel_id: int,
        *,
        limit: int,
        before: datetime | None = None,
    ) -> ThreadPage:
        channel = await self._forum_channel(channel_id)

        async def _page() -> list[discord.Thread]:
            return [thread async for thread in channel.archived_threads(limit=limit, before=before)]

        threads = await self._call("channel", channel_id, _page)
        next_before = None
        if len(threads) >= limit and threads:
            next_before = min(
                thread.archive_timestamp or _thread_created_at(thread) for thread in threads
            )
        return ThreadPage(
            threads=tuple(to_source_thread(thread) for thread in threads),
            next_before=next_before,
        )

    async def fetch_starter_message(self, thread_id: int) -> SourceMessage:
        thread = await self._thread(thread_id)
        # The starter message of a forum post shares the thread's id.
        message = thread.starter_message or await self._call(
            "message", thread_id, lambda: thread.fetch_message(thread_id)
        )
        return to_source_message(message)

    async def fetch_message(self, thread_id: int, message_id: int) -> SourceMessage:
        thread = await self._thread(thread_id)
        message = await self._call("message", message_id, lambda: thread.fetch_message(message_id))
        return to_source_message(message)

    async def fetch_messages(
        self,
        thread_id: int,
        *,
        limit: int,
        before: int | None = None,
    ) -> list[SourceMessage]:
        thread = await self._thread(thread_id)
        cursor = discord.Object(id=before) if before is not None else None

        async def _page() -> list[discord.Message]:
            return [message async for message in thread.history(limit=limit, before=cursor)]

        messages = await self._call("thread", thread_id, _page)
        logger.debug("Fetched %d messages from thread %s before %s", len(messages), thread_id, before)
        return [to_source_message(message) for message in messages]
