# tests/test_cli.py
"""Tests for the sync command-line entry point."""

from __future__ import annotations

import json

import pytest

from forum_mirror.repositories import ThreadRepository
from forum_mirror.scripts import sync as sync_script
from forum_mirror.services.ranking import RankOrder
from forum_mirror.services.store import ThreadRecord
from forum_mirror.services.sync import SyncMode, SyncStats
from forum_mirror.services.sync_state import SyncLockError, SyncStateStore
from tests.conftest import at


def test_parser_scopes_are_exclusive() -> None:
    parser = sync_script.build_parser()

    args = parser.parse_args(["--channel", "100", "--skip-existing", "--rank-order", "oldest_first"])

    assert args.channel == 100
    assert args.skip_existing
    assert args.rank_order == "oldest_first"
    with pytest.raises(SystemExit):
        parser.parse_args(["--channel", "1", "--thread", "2"])


def test_main_prints_stats(mocker, capsys) -> None:
    stats = SyncStats(mode=SyncMode.DELTA, threads_processed=3, started_at=at(0), finished_at=at(1))
    run_sync = mocker.patch.object(sync_script, "run_sync", new=mocker.AsyncMock(return_value=stats))

    assert sync_script.main(["--force-full"]) == 0

    args = run_sync.await_args.args[0]
    assert args.force_full
    output = json.loads(capsys.readouterr().out)
    assert output["mode"] == "delta"
    assert output["threads_processed"] == 3
    assert output["duration_seconds"] == 60.0


def test_main_reports_lock_conflict(mocker) -> None:
    mocker.patch.object(
        sync_script, "run_sync", new=mocker.AsyncMock(side_effect=SyncLockError("busy"))
    )

    assert sync_script.main([]) == 2


def test_configured_guild_is_the_default_scope(monkeypatch) -> None:
    monkeypatch.setattr(sync_script.settings, "discord_guild_id", 555)
    parser = sync_script.build_parser()

    assert sync_script.build_options(parser.parse_args([])).guild_id == 555
    scoped = sync_script.build_options(parser.parse_args(["--channel", "100"]))
    assert scoped.guild_id is None
    assert scoped.channel_id == 100


async def _seed_threads(store) -> None:
    for thread_id in (1, 2):
        await store.upsert_thread(
            ThreadRecord(
                id=thread_id,
                channel_id=100,
                slug=f"thread-{thread_id}",
                title=f"Thread {thread_id}",
                author_alias="author",
                body_html=None,
                created_at=at(thread_id),
            )
        )


async def _ranks(store) -> dict[int, int | None]:
    return {t.id: t.rank for t in await store.list_threads(100, include_unpublished=True)}


@pytest.mark.asyncio
async def test_rank_maintenance_waits_for_running_sync(store, channel_factory) -> None:
    await channel_factory()
    await _seed_threads(store)
    state = SyncStateStore(store)
    token = await state.acquire_lock()

    with pytest.raises(SyncLockError):
        await sync_script.run_rank_maintenance(store, recompute_order=RankOrder.NEWEST_FIRST)

    assert await _ranks(store) == {1: 1, 2: 2}
    await state.release_lock(token)


@pytest.mark.asyncio
async def test_rank_maintenance_fills_then_recomputes(store, channel_factory) -> None:
    await channel_factory()
    await _seed_threads(store)
    async with store.transaction() as session:
        await ThreadRepository(session).set_rank(1, None)

    await sync_script.run_rank_maintenance(store, fill_missing=True)
    assert await _ranks(store) == {1: 3, 2: 2}

    await sync_script.run_rank_maintenance(store, recompute_order=RankOrder.NEWEST_FIRST)
    assert await _ranks(store) == {1: 2, 2: 1}
    # The lock was released after each pass.
    assert await SyncStateStore(store).acquire_lock()
