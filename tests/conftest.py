# tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from forum_mirror.api.deps import get_admin_token
from forum_mirror.main import app as fastapi_app
from forum_mirror.services.content import ContentTransformer
from forum_mirror.services.store import ChannelRecord, ForumStore
from forum_mirror.services.sync import SyncOrchestrator
from tests.fakes import FakeClock, FakeSource

TEST_DB_URL = "sqlite+aiosqlite://"
ADMIN_TOKEN = "test-admin-token"
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Return a fixed UTC timestamp ``minutes`` after the test epoch."""
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture()
async def store() -> AsyncIterator[ForumStore]:
    store = ForumStore.from_url(TEST_DB_URL)
    await store.create_schema()
    try:
        yield store
    finally:
        await store.dispose()


@pytest.fixture()
def channel_factory(store: ForumStore) -> Callable:
    async def _create(channel_id: int = 100, name: str = "General Help", position: int = 0):
        return await store.upsert_channel(
            ChannelRecord(
                id=channel_id,
                name=name,
                slug=name.lower().replace(" ", "-"),
                position=position,
            )
        )

    return _create


@pytest.fixture()
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(at(60 * 24 * 30))


@pytest.fixture()
def orchestrator(store: ForumStore, source: FakeSource, clock: FakeClock) -> SyncOrchestrator:
    return SyncOrchestrator(
        store,
        source,
        ContentTransformer(),
        alias_salt="test-salt",
        page_size=2,
        archived_page_size=2,
        page_delay=0,
        clock=clock,
    )


@pytest.fixture()
def app(store: ForumStore) -> FastAPI:
    fastapi_app.state.store = store
    fastapi_app.dependency_overrides[get_admin_token] = lambda: ADMIN_TOKEN
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_admin_token, None)
        fastapi_app.state.store = None


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
