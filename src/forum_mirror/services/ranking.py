"""Thread rank assignment.

This is the single place that decides thread ranks. Ranks are positive
integers; lower sorts first. Three paths write them:

* incremental: a new thread gets the channel's max rank + 1;
* bulk recompute: every thread in a channel is renumbered 1..N by creation
  time, newest first by default or oldest first on request;
* manual: staff supply explicit ``(thread_id, rank)`` pairs, applied all or
  nothing.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable

from forum_mirror.repositories import ChannelRepository, IntegrityViolationError, ThreadRepository
from forum_mirror.services.store import ForumStore

logger = logging.getLogger(__name__)


class RankOrder(str, enum.Enum):
    """Direction used when ranks are derived from creation time."""

    NEWEST_FIRST = "newest_first"
    OLDEST_FIRST = "oldest_first"


DEFAULT_RANK_ORDER = RankOrder.NEWEST_FIRST


def rank_for_position(index: int, total: int, order: RankOrder = DEFAULT_RANK_ORDER) -> int:
    """Return the rank of the ``index``-th thread in ascending creation order.

    With ``OLDEST_FIRST`` the oldest thread is rank 1; with ``NEWEST_FIRST``
    the newest thread is rank 1 and the oldest is rank ``total``.
    """
    if not 0 <= index < total:
        raise ValueError(f"index {index} outside 0..{total - 1}")
    if order is RankOrder.OLDEST_FIRST:
        return index + 1
    return total - index


class RankAssigner:
    """Compute and persist thread ranks through the store."""

    def __init__(self, store: ForumStore) -> None:
        self.store = store

    async def next_rank(self, channel_id: int) -> int:
        """Return max rank + 1 for a channel, 1 for an empty one.

        The result is only a preview; :meth:`ForumStore.upsert_thread` performs
        the same read under the channel lock when it inserts.
        """
        async with self.store.channel_lock(channel_id):
            return await self.store.max_rank(channel_id) + 1

    async def recompute_channel(
        self,
        channel_id: int,
        order: RankOrder = DEFAULT_RANK_ORDER,
    ) -> int:
        """Renumber every thread of a channel from creation time.

        Prior ranks are overwritten in one transaction.

        Returns:
            Number of threads ranked.
        """
        async with self.store.channel_lock(channel_id):
            async with self.store.transaction() as session:
                if await ChannelRepository(session).get_by_id(channel_id) is None:
                    raise IntegrityViolationError("channel", channel_id)
                repo = ThreadRepository(session)
                threads = await repo.list_for_channel(channel_id)
                total = len(threads)
                for index, thread in enumerate(threads):
                    thread.rank = rank_for_position(index, total, order)
                await session.flush()
        logger.info(
            "Recomputed ranks for %d threads in channel %s (%s)",
            total,
            channel_id,
            order.value,
        )
        return total

    async def recompute_all(self, order: RankOrder = DEFAULT_RANK_ORDER) -> dict[int, int]:
        """Recompute ranks for every registered channel.

        Returns:
            Mapping of channel id to number of threads ranked.
        """
        results: dict[int, int] = {}
        for channel in await self.store.list_channels():
            results[channel.id] = await self.recompute_channel(channel.id, order)
        return results

    async def apply_manual(self, updates: Iterable[tuple[int, int]]) -> int:
        """Apply explicit ranks atomically; other threads keep their ranks.

        Raises:
            ValueError: If a rank is not a positive integer.
            IntegrityViolationError: If a thread is unknown; nothing is applied.
        """
        pairs = [(int(thread_id), int(rank)) for thread_id, rank in updates]
        for thread_id, rank in pairs:
            if rank < 1:
                raise ValueError(f"rank for thread {thread_id} must be positive, got {rank}")
        return await self.store.apply_rank_updates(pairs)

    async def fill_missing(self, channel_id: int | None = None) -> int:
        """Give unranked threads max + 1, max + 2, ... in creation order.

        Returns:
            Number of threads that received a rank.
        """
        if channel_id is None:
            async with self.store.transaction() as session:
                channel_ids = await ThreadRepository(session).channels_with_unranked()
        else:
            channel_ids = [channel_id]

        filled = 0
        for current in channel_ids:
            async with self.store.channel_lock(current):
                async with self.store.transaction() as session:
                    repo = ThreadRepository(session)
                    rank = await repo.max_rank(current)
                    for thread in await repo.list_unranked(current):
                        rank += 1
                        thread.rank = rank
                        filled += 1
                    await session.flush()
        if filled:
            logger.info("Assigned ranks to %d unranked threads", filled)
        return filled
