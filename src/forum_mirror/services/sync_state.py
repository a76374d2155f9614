"""Persisted sync state and the advisory run lock."""

from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from forum_mirror.db.time import EPOCH, as_utc, utcnow
from forum_mirror.repositories import SyncStateRepository
from forum_mirror.services.store import ForumStore

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = timedelta(hours=1)


class SyncLockError(RuntimeError):
    """Raised when another sync run holds the run lock."""


@dataclass(frozen=True)
class SyncSnapshot:
    """What the orchestrator needs to pick a sync mode."""

    last_sync: datetime
    is_first_run: bool


FIRST_RUN = SyncSnapshot(last_sync=EPOCH, is_first_run=True)


class SyncStateStore:
    """Read and write the singleton ``sync_state`` row."""

    def __init__(
        self,
        store: ForumStore,
        *,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.lock_ttl = lock_ttl
        self.clock = clock

    async def read(self) -> SyncSnapshot:
        """Return the recorded state; anything missing or unreadable means first run."""
        try:
            async with self.store.transaction() as session:
                state = await SyncStateRepository(session).get()
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            logger.warning("Failed to read sync state, assuming first run: %s", exc)
            return FIRST_RUN

        if state is None or state.last_sync is None or state.is_first_run:
            return FIRST_RUN
        return SyncSnapshot(last_sync=as_utc(state.last_sync), is_first_run=False)

    async def mark_success(self, finished_at: datetime | None = None) -> SyncSnapshot:
        """Record a successful run and clear the first-run flag."""
        finished_at = finished_at or self.clock()
        async with self.store.transaction() as session:
            await SyncStateRepository(session).record_success(finished_at)
        logger.info("Recorded successful sync at %s", finished_at.isoformat())
        return SyncSnapshot(last_sync=finished_at, is_first_run=False)

    async def acquire_lock(self) -> str:
        """Claim the run lock and return its token.

        A lock not refreshed within the TTL is treated as abandoned and taken
        over; long runs call :meth:`refresh_lock` as they go.

        Raises:
            SyncLockError: If another run holds a fresh lock.
        """
        token = secrets.token_hex(16)
        now = self.clock()
        async with self.store.transaction() as session:
            acquired = await SyncStateRepository(session).try_lock(
                token, now, now - self.lock_ttl
            )
        if not acquired:
            raise SyncLockError("Another sync run is in progress")
        logger.debug("Acquired sync lock %s", token)
        return token

    async def refresh_lock(self, token: str) -> bool:
        """Keep a held lock fresh; False means another run has taken it over."""
        async with self.store.transaction() as session:
            held = await SyncStateRepository(session).refresh_lock(token, self.clock())
        if not held:
            logger.warning("Sync lock %s is no longer held", token)
        return held

    async def release_lock(self, token: str) -> None:
        """Release the run lock held by ``token``."""
        async with self.store.transaction() as session:
            released = await SyncStateRepository(session).unlock(token)
        if not released:
            logger.warning("Sync lock %s was no longer held at release", token)

    @asynccontextmanager
    async def run_lock(self) -> AsyncIterator[str]:
        """Hold the run lock for the duration of the block."""
        token = await self.acquire_lock()
        try:
            yield token
        finally:
            await self.release_lock(token)
