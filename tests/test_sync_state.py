# tests/test_sync_state.py
"""Tests for persisted sync state and the run lock."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from forum_mirror.db.time import EPOCH
from forum_mirror.services.sync_state import SyncLockError, SyncStateStore
from tests.conftest import at
from tests.fakes import FakeClock


@pytest.fixture()
def state_clock() -> FakeClock:
    return FakeClock(at(0))


@pytest.fixture()
def state(store, state_clock) -> SyncStateStore:
    return SyncStateStore(store, lock_ttl=timedelta(minutes=30), clock=state_clock)


@pytest.mark.asyncio
async def test_missing_state_means_first_run(state) -> None:
    snapshot = await state.read()

    assert snapshot.is_first_run
    assert snapshot.last_sync == EPOCH


@pytest.mark.asyncio
async def test_mark_success_round_trips(state) -> None:
    await state.mark_success(at(90))

    snapshot = await state.read()

    assert not snapshot.is_first_run
    assert snapshot.last_sync == at(90)
    assert snapshot.last_sync.tzinfo is not None


@pytest.mark.asyncio
async def test_read_failure_is_treated_as_first_run(state, store, mocker) -> None:
    mocker.patch(
        "forum_mirror.services.sync_state.SyncStateRepository.get",
        side_effect=OperationalError("SELECT", {}, Exception("no such table")),
    )

    snapshot = await state.read()

    assert snapshot.is_first_run


@pytest.mark.asyncio
async def test_lock_excludes_second_holder(state) -> None:
    token = await state.acquire_lock()

    with pytest.raises(SyncLockError):
        await state.acquire_lock()

    await state.release_lock(token)
    second = await state.acquire_lock()
    assert second != token


@pytest.mark.asyncio
async def test_stale_lock_is_taken_over(state, state_clock) -> None:
    await state.acquire_lock()
    state_clock.advance(minutes=31)

    assert await state.acquire_lock()


@pytest.mark.asyncio
async def test_run_lock_releases_on_error(state) -> None:
    with pytest.raises(RuntimeError):
        async with state.run_lock():
            raise RuntimeError("boom")

    async with state.run_lock() as token:
        assert token


@pytest.mark.asyncio
async def test_refreshed_lock_is_not_taken_over(state, state_clock) -> None:
    token = await state.acquire_lock()
    state_clock.advance(minutes=20)
    assert await state.refresh_lock(token)
    state_clock.advance(minutes=20)

    # 40 minutes since acquisition but only 20 since the last refresh.
    with pytest.raises(SyncLockError):
        await state.acquire_lock()


@pytest.mark.asyncio
async def test_refresh_reports_lost_lock(state, state_clock) -> None:
    token = await state.acquire_lock()
    state_clock.advance(minutes=31)
    await state.acquire_lock()

    assert not await state.refresh_lock(token)
