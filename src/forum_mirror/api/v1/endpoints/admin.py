# src/forum_mirror/api/v1/endpoints/admin.py
"""Staff endpoints for curating mirrored threads.

Every route requires the static admin bearer token.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from forum_mirror.api.deps import StoreDep, require_admin
from forum_mirror.models import Thread
from forum_mirror.repositories import IntegrityViolationError
from forum_mirror.schemas import (
    PublishToggle,
    RankUpdateRequest,
    RankUpdateResponse,
    RecomputeResponse,
    ThreadResponse,
    ThreadUpdate,
)
from forum_mirror.services.ranking import RankAssigner, RankOrder
from forum_mirror.services.sync_state import SyncLockError, SyncStateStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _not_found(exc: IntegrityViolationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/ranks", response_model=RankUpdateResponse)
async def update_ranks(payload: RankUpdateRequest, store: StoreDep) -> RankUpdateResponse:
    """Apply explicit thread ranks all or nothing.

    Raises:
        HTTPException: 404 if any thread is unknown; no rank is changed.
    """
    try:
        updated = await RankAssigner(store).apply_manual(payload.as_pairs())
    except IntegrityViolationError as exc:
        logger.warning("Rejected rank batch of %d updates: %s", len(payload.rank_updates), exc)
        raise _not_found(exc) from exc
    return RankUpdateResponse(success=True, updated=updated)


@router.post("/threads/{thread_id}/published", response_model=ThreadResponse)
async def set_thread_published(thread_id: int, payload: PublishToggle, store: StoreDep) -> Thread:
    """Publish or unpublish a thread."""
    try:
        return await store.set_published(thread_id, payload.published)
    except IntegrityViolationError as exc:
        raise _not_found(exc) from exc


@router.patch("/threads/{thread_id}", response_model=ThreadResponse)
async def edit_thread(thread_id: int, payload: ThreadUpdate, store: StoreDep) -> Thread:
    """Edit a thread's title, body or author alias. The rank is left alone."""
    try:
        return await store.edit_thread(
            thread_id,
            title=payload.title,
            body_html=payload.body_html,
            author_alias=payload.author_alias,
        )
    except IntegrityViolationError as exc:
        raise _not_found(exc) from exc


@router.post("/channels/{channel_id}/recompute-ranks", response_model=RecomputeResponse)
async def recompute_channel_ranks(
    channel_id: int,
    store: StoreDep,
    order: RankOrder = Query(RankOrder.NEWEST_FIRST, description="Which end gets rank 1"),
) -> RecomputeResponse:
    """Renumber a channel's threads by creation time.

    Raises:
        HTTPException: 404 for an unknown channel, 409 while a sync is running.
    """
    try:
        async with SyncStateStore(store).run_lock():
            ranked = await RankAssigner(store).recompute_channel(channel_id, order)
    except SyncLockError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except IntegrityViolationError as exc:
        raise _not_found(exc) from exc
    return RecomputeResponse(channel_id=channel_id, order=order.value, threads_ranked=ranked)
