"""Data access helpers for working with channels."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from forum_mirror.models.channel import Channel

__all__ = ["ChannelRepository"]


class ChannelRepository:
    """Thin wrapper around database access for channel entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with an async SQLAlchemy session."""
        self.session = session

    async def get_by_id(self, channel_id: int) -> Channel | None:
        """Return a channel by identifier."""
        return await self.session.get(Channel, channel_id)

    async def get_by_slug(self, slug: str) -> Channel | None:
        """Return a channel by slug."""
        result = await self.session.execute(select(Channel).where(Channel.slug == slug))
        return result.scalars().first()

    async def list_all(self) -> list[Channel]:
        """Return channels in display order."""
        result = await self.session.execute(
            select(Channel).order_by(Channel.position.asc(), Channel.name.asc(), Channel.id.asc())
        )
        return list(result.scalars())

    async def _unique_slug(self, base_slug: str, channel_id: int) -> str:
        slug = base_slug or f"channel-{channel_id}"
        holder = await self.get_by_slug(slug)
        if holder is None or holder.id == channel_id:
            return slug
        return f"{slug}-{channel_id}"

    async def upsert(
        self,
        *,
        channel_id: int,
        name: str,
        slug: str,
        description: str | None,
        position: int,
    ) -> tuple[Channel, bool]:
        """Insert a channel or overwrite its name, slug, description and position.

        Returns:
            The persisted channel and whether it was newly created.
        """
        slug = await self._unique_slug(slug, channel_id)
        channel = await self.get_by_id(channel_id)
        created = channel is None
        if channel is None:
            channel = Channel(id=channel_id, slug=slug, name=name)
            self.session.add(channel)
        channel.slug = slug
        channel.name = name
        channel.description = description
        channel.position = position
        await self.session.flush()
        return channel, created
