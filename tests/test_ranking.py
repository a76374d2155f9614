# tests/test_ranking.py
"""Tests for thread rank assignment."""

from __future__ import annotations

import asyncio

import pytest

from forum_mirror.repositories import IntegrityViolationError, ThreadRepository
from forum_mirror.services.ranking import RankAssigner, RankOrder, rank_for_position
from forum_mirror.services.store import ThreadRecord
from tests.conftest import at


def _record(thread_id: int, minutes: int, channel_id: int = 100) -> ThreadRecord:
    return ThreadRecord(
        id=thread_id,
        channel_id=channel_id,
        slug=f"thread-{thread_id}",
        title=f"Thread {thread_id}",
        author_alias="author",
        body_html=None,
        created_at=at(minutes),
    )


async def _ranks(store, channel_id: int = 100) -> dict[int, int | None]:
    threads = await store.list_threads(channel_id, include_unpublished=True)
    return {thread.id: thread.rank for thread in threads}


def test_rank_for_position_directions() -> None:
    assert [rank_for_position(i, 3, RankOrder.OLDEST_FIRST) for i in range(3)] == [1, 2, 3]
    assert [rank_for_position(i, 3, RankOrder.NEWEST_FIRST) for i in range(3)] == [3, 2, 1]
    with pytest.raises(ValueError):
        rank_for_position(3, 3)


@pytest.mark.asyncio
async def test_recompute_newest_first(store, channel_factory) -> None:
    await channel_factory()
    # Inserted out of creation order on purpose.
    for thread_id, minutes in ((2, 20), (1, 10), (3, 30)):
        await store.upsert_thread(_record(thread_id, minutes), rank=99)

    ranked = await RankAssigner(store).recompute_channel(100)

    assert ranked == 3
    assert await _ranks(store) == {3: 1, 2: 2, 1: 3}


@pytest.mark.asyncio
async def test_recompute_oldest_first(store, channel_factory) -> None:
    await channel_factory()
    for thread_id, minutes in ((2, 20), (1, 10), (3, 30)):
        await store.upsert_thread(_record(thread_id, minutes))

    await RankAssigner(store).recompute_channel(100, RankOrder.OLDEST_FIRST)

    assert await _ranks(store) == {1: 1, 2: 2, 3: 3}


@pytest.mark.asyncio
async def test_recompute_breaks_ties_by_id(store, channel_factory) -> None:
    await channel_factory()
    await store.upsert_thread(_record(5, 10))
    await store.upsert_thread(_record(4, 10))

    await RankAssigner(store).recompute_channel(100, RankOrder.OLDEST_FIRST)

    assert await _ranks(store) == {4: 1, 5: 2}


@pytest.mark.asyncio
async def test_recompute_unknown_channel(store) -> None:
    with pytest.raises(IntegrityViolationError):
        await RankAssigner(store).recompute_channel(404)


@pytest.mark.asyncio
async def test_recompute_all_covers_every_channel(store, channel_factory) -> None:
    await channel_factory(100, "One")
    await channel_factory(200, "Two")
    await store.upsert_thread(_record(1, 1, channel_id=100))
    await store.upsert_thread(_record(2, 2, channel_id=200))
    await store.upsert_thread(_record(3, 3, channel_id=200))

    result = await RankAssigner(store).recompute_all()

    assert result == {100: 1, 200: 2}
    assert await _ranks(store, 200) == {3: 1, 2: 2}


@pytest.mark.asyncio
async def test_next_rank_is_max_plus_one(store, channel_factory) -> None:
    await channel_factory()
    assigner = RankAssigner(store)

    assert await assigner.next_rank(100) == 1
    await store.upsert_thread(_record(1, 1), rank=41)
    assert await assigner.next_rank(100) == 42


@pytest.mark.asyncio
async def test_concurrent_inserts_never_share_a_rank(store, channel_factory) -> None:
    await channel_factory()

    await asyncio.gather(*(store.upsert_thread(_record(i, i)) for i in range(1, 9)))

    ranks = sorted((await _ranks(store)).values())
    assert ranks == list(range(1, 9))


@pytest.mark.asyncio
async def test_apply_manual_rejects_whole_batch(store, channel_factory) -> None:
    await channel_factory()
    await store.upsert_thread(_record(1, 1))
    await store.upsert_thread(_record(2, 2))
    assigner = RankAssigner(store)

    with pytest.raises(IntegrityViolationError):
        await assigner.apply_manual([(1, 5), (404, 6)])
    with pytest.raises(ValueError):
        await assigner.apply_manual([(1, 0)])

    assert await _ranks(store) == {1: 1, 2: 2}
    assert await assigner.apply_manual([(2, 1), (1, 2)]) == 2
    assert await _ranks(store) == {2: 1, 1: 2}


@pytest.mark.asyncio
async def test_fill_missing_appends_after_max(store, channel_factory) -> None:
    await channel_factory()
    await store.upsert_thread(_record(1, 1), rank=5)
    await store.upsert_thread(_record(2, 2))
    await store.upsert_thread(_record(3, 3))
    await store.upsert_thread(_record(4, 4))
    # Simulate rows written before ranks existed.
    async with store.transaction() as session:
        repo = ThreadRepository(session)
        await repo.set_rank(3, None)
        await repo.set_rank(2, None)

    filled = await RankAssigner(store).fill_missing()

    assert filled == 2
    assert await _ranks(store) == {1: 5, 2: 9, 3: 10, 4: 8}
