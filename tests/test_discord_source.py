# tests/test_discord_source.py
"""Tests for the discord.py adapter using mocked client objects."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from forum_mirror.services.discord_source import (
    DiscordForumSource,
    to_source_message,
    to_source_thread,
)
from forum_mirror.services.source import SourceFetchError, SourceNotFoundError


def _aiter(items):
    async def _gen():
        for item in items:
            yield item

    return _gen()


def _forum_channel(channel_id: int = 100) -> MagicMock:
    channel = MagicMock(spec=discord.ForumChannel)
    channel.id = channel_id
    channel.name = "general-help"
    channel.topic = "Ask here"
    channel.position = 2
    channel.guild = MagicMock(id=1)
    tag = MagicMock(id=5)
    tag.name = "bug"
    channel.available_tags = [tag]
    return channel


def _thread(thread_id: int, *, parent_id: int = 100, created_at=None, archived_at=None) -> MagicMock:
    thread = MagicMock(spec=discord.Thread)
    thread.id = thread_id
    thread.parent_id = parent_id
    thread.name = f"Thread {thread_id}"
    thread.created_at = created_at
    thread.archive_timestamp = archived_at
    thread.applied_tags = []
    thread.owner_id = 10
    thread.archived = archived_at is not None
    thread.starter_message = None
    return thread


def _message(message_id: int, *, reference_id=None) -> MagicMock:
    message = MagicMock(spec=discord.Message)
    message.id = message_id
    message.channel = MagicMock(id=1)
    message.author = MagicMock(id=20, bot=False)
    message.content = "hello"
    message.created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    message.edited_at = None
    attachment = MagicMock(url="https://cdn.example.com/a.png")
    message.attachments = [attachment]
    message.reference = MagicMock(message_id=reference_id) if reference_id else None
    return message


def _not_found() -> discord.NotFound:
    return discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")


def test_to_source_message_maps_reference_and_attachments() -> None:
    converted = to_source_message(_message(7, reference_id=3))

    assert converted.id == 7
    assert converted.channel_id == 1
    assert converted.reference_id == 3
    assert converted.attachment_urls == ("https://cdn.example.com/a.png",)
    assert converted.author_is_bot is False


def test_to_source_thread_falls_back_to_snowflake_time() -> None:
    snowflake = 1_000_000_000_000_000_000
    converted = to_source_thread(_thread(snowflake))

    assert converted.created_at == discord.utils.snowflake_time(snowflake)


@pytest.mark.asyncio
async def test_get_channel_from_cache() -> None:
    client = MagicMock()
    client.get_channel.return_value = _forum_channel()

    channel = await DiscordForumSource(client).get_channel(100)

    assert channel.name == "general-help"
    assert channel.position == 2
    assert channel.available_tags[0].name == "bug"


@pytest.mark.asyncio
async def test_missing_channel_maps_to_not_found() -> None:
    client = MagicMock()
    client.get_channel.return_value = None
    client.fetch_channel = AsyncMock(side_effect=_not_found())

    with pytest.raises(SourceNotFoundError):
        await DiscordForumSource(client).get_channel(100)


@pytest.mark.asyncio
async def test_non_forum_channel_is_not_found() -> None:
    client = MagicMock()
    client.get_channel.return_value = MagicMock(spec=discord.TextChannel)

    with pytest.raises(SourceNotFoundError):
        await DiscordForumSource(client).get_channel(100)


@pytest.mark.asyncio
async def test_active_threads_are_filtered_by_parent() -> None:
    channel = _forum_channel()
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    channel.guild.active_threads = AsyncMock(
        return_value=[_thread(1, created_at=created), _thread(2, parent_id=999, created_at=created)]
    )
    client = MagicMock()
    client.get_channel.return_value = channel

    threads = await DiscordForumSource(client).fetch_active_threads(100)

    assert [thread.id for thread in threads] == [1]


@pytest.mark.asyncio
async def test_archived_page_cursor() -> None:
    channel = _forum_channel()
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    older = datetime(2024, 2, 1, tzinfo=timezone.utc)
    newer = datetime(2024, 3, 1, tzinfo=timezone.utc)
    channel.archived_threads = MagicMock(
        return_value=_aiter([
            _thread(1, created_at=created, archived_at=newer),
            _thread(2, created_at=created, archived_at=older),
        ])
    )
    client = MagicMock()
    client.get_channel.return_value = channel

    page = await DiscordForumSource(client).fetch_archived_threads(100, limit=2)

    assert [thread.id for thread in page.threads] == [1, 2]
    assert page.next_before == older
    channel.archived_threads.assert_called_once_with(limit=2, before=None)


@pytest.mark.asyncio
async def test_fetch_messages_passes_cursor_and_maps_errors() -> None:
    thread = _thread(1, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    thread.history = MagicMock(return_value=_aiter([_message(9), _message(8)]))
    client = MagicMock()
    client.get_channel.return_value = thread
    source = DiscordForumSource(client)

    messages = await source.fetch_messages(1, limit=2, before=10)

    assert [m.id for m in messages] == [9, 8]
    kwargs = thread.history.call_args.kwargs
    assert kwargs["limit"] == 2
    assert kwargs["before"].id == 10

    thread.history = MagicMock(
        side_effect=discord.HTTPException(MagicMock(status=429, reason="Too Many Requests"), "slow down")
    )
    with pytest.raises(SourceFetchError):
        await source.fetch_messages(1, limit=2)


@pytest.mark.asyncio
async def test_starter_message_is_fetched_when_not_cached() -> None:
    thread = _thread(1, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    thread.fetch_message = AsyncMock(return_value=_message(1))
    client = MagicMock()
    client.get_channel.return_value = thread

    starter = await DiscordForumSource(client).fetch_starter_message(1)

    assert starter.id == 1
    thread.fetch_message.assert_awaited_once_with(1)
