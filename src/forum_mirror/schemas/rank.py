# src/forum_mirror/schemas/rank.py
"""Schemas for the manual and bulk rank endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class RankUpdate(BaseModel):
    """One explicit ``(thread, rank)`` assignment."""

    thread_id: int = Field(..., alias="threadId")
    rank: int = Field(..., ge=1)

    model_config = ConfigDict(populate_by_name=True)


class RankUpdateRequest(BaseModel):
    """Batch of rank assignments applied all or nothing."""

    rank_updates: list[RankUpdate] = Field(..., alias="rankUpdates")

    model_config = ConfigDict(populate_by_name=True)

    def as_pairs(self) -> list[tuple[int, int]]:
        return [(update.thread_id, update.rank) for update in self.rank_updates]


class RankUpdateResponse(BaseModel):
    """Outcome of a rank batch; failures are reported as HTTP errors instead."""

    success: bool = True
    updated: int = 0


class RecomputeResponse(BaseModel):
    channel_id: int
    order: str
    threads_ranked: int
