# src/forum_mirror/services/__init__.py
"""Sync core services for the forum mirror."""

from .content import ContentTransformer, HttpImageProbe
from .ranking import RankAssigner, RankOrder
from .replies import ReplyResolver
from .store import ForumStore
from .sync import SyncMode, SyncOptions, SyncOrchestrator, SyncStats
from .sync_state import SyncLockError, SyncStateStore

__all__ = [
    "ContentTransformer",
    "HttpImageProbe",
    "ForumStore",
    "RankAssigner",
    "RankOrder",
    "ReplyResolver",
    "SyncMode",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncStats",
    "SyncLockError",
    "SyncStateStore",
]
