"""Data access helpers for the sync state singleton."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from forum_mirror.models.sync_state import SYNC_STATE_ID, SyncState

__all__ = ["SyncStateRepository"]


class SyncStateRepository:
    """Reads and writes the single ``sync_state`` row."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with an async SQLAlchemy session."""
        self.session = session

    async def get(self) -> SyncState | None:
        """Return the singleton row if it exists."""
        return await self.session.get(SyncState, SYNC_STATE_ID)

    async def get_or_create(self) -> SyncState:
        """Return the singleton row, creating a first-run record when absent."""
        state = await self.get()
        if state is None:
            state = SyncState(id=SYNC_STATE_ID, last_sync=None, is_first_run=True)
            self.session.add(state)
            await self.session.flush()
        return state

    async def record_success(self, finished_at: datetime) -> SyncState:
        """Store a successful completion time and clear the first-run flag."""
        state = await self.get_or_create()
        state.last_sync = finished_at
        state.is_first_run = False
        await self.session.flush()
        return state

    async def try_lock(self, token: str, now: datetime, stale_before: datetime) -> bool:
        """Claim the run lock if it is free or older than ``stale_before``."""
        await self.get_or_create()
        result = await self.session.execute(
            update(SyncState)
            .where(
                SyncState.id == SYNC_STATE_ID,
                or_(SyncState.lock_token.is_(None), SyncState.locked_at < stale_before),
            )
            .values(lock_token=token, locked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def unlock(self, token: str) -> bool:
        """Release the run lock if ``token`` still holds it."""
        result = await self.session.execute(
            update(SyncState)
            .where(SyncState.id == SYNC_STATE_ID, SyncState.lock_token == token)
            .values(lock_token=None, locked_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh_lock(self, token: str, now: datetime) -> bool:
        """Move ``locked_at`` forward if ``token`` still holds the run lock."""
        result = await self.session.execute(
            update(SyncState)
            .where(SyncState.id == SYNC_STATE_ID, SyncState.lock_token == token)
            .values(locked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
