# src/forum_mirror/models/__init__.py
"""SQLAlchemy models for the forum mirror."""

from .channel import Channel
from .post import Post
from .sync_state import SyncState
from .thread import Thread

__all__ = [
    "Channel",
    "Post",
    "SyncState",
    "Thread",
]
