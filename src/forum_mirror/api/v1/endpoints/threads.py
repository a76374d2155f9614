# src/forum_mirror/api/v1/endpoints/threads.py
"""Public read endpoints for threads and their posts."""

from fastapi import APIRouter, HTTPException, status

from forum_mirror.api.deps import SessionDep
from forum_mirror.models import Post, Thread
from forum_mirror.repositories import PostRepository, ThreadRepository
from forum_mirror.schemas import PostResponse, ThreadResponse

router = APIRouter(prefix="/threads", tags=["threads"])


async def _published_thread(db: SessionDep, thread_id: int) -> Thread:
    thread = await ThreadRepository(db).get_by_id(thread_id)
    if thread is None or not thread.published:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Thread not found",
        )
    return thread


@router.get("/{thread_id}", response_model=ThreadResponse)
async def get_thread(thread_id: int, db: SessionDep) -> Thread:
    """Get a published thread by ID."""
    return await _published_thread(db, thread_id)


@router.get("/{thread_id}/posts", response_model=list[PostResponse])
async def list_thread_posts(thread_id: int, db: SessionDep) -> list[Post]:
    """List a published thread's posts oldest first."""
    await _published_thread(db, thread_id)
    return await PostRepository(db).list_for_thread(thread_id)
