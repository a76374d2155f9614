"""Data access helpers for the mirrored forum tables."""

from .channel_repo import ChannelRepository
from .errors import IntegrityViolationError
from .post_repo import PostRepository
from .sync_state_repo import SyncStateRepository
from .thread_repo import ThreadRepository

__all__ = [
    "ChannelRepository",
    "IntegrityViolationError",
    "PostRepository",
    "SyncStateRepository",
    "ThreadRepository",
]
