# src/forum_mirror/api/v1/endpoints/channels.py
"""Public read endpoints for channels and their threads."""

from fastapi import APIRouter, HTTPException, Query, status

from forum_mirror.api.deps import SessionDep
from forum_mirror.models import Channel, Thread
from forum_mirror.repositories import ChannelRepository, ThreadRepository
from forum_mirror.schemas import ChannelResponse, ThreadResponse

router = APIRouter(prefix="/channels", tags=["channels"])


@router.get("/", response_model=list[ChannelResponse])
async def list_channels(db: SessionDep) -> list[Channel]:
    """List channels in display order."""
    return await ChannelRepository(db).list_all()


@router.get("/{slug}/threads", response_model=list[ThreadResponse])
async def list_channel_threads(
    slug: str,
    db: SessionDep,
    limit: int = Query(100, ge=1, le=500, description="Maximum number of threads to return"),
    offset: int = Query(0, ge=0),
) -> list[Thread]:
    """List a channel's published threads ordered by rank, then creation time.

    Raises:
        HTTPException: If the channel does not exist.
    """
    channel = await ChannelRepository(db).get_by_slug(slug)
    if channel is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Channel not found",
        )
    threads = await ThreadRepository(db).list_ranked(channel.id)
    return threads[offset:offset + limit]
