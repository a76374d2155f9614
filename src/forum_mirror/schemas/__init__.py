# src/forum_mirror/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .channel import ChannelResponse
from .post import PostResponse
from .rank import RankUpdate, RankUpdateRequest, RankUpdateResponse, RecomputeResponse
from .thread import PublishToggle, ThreadResponse, ThreadUpdate

__all__ = [
    "ChannelResponse",
    "PostResponse",
    "PublishToggle",
    "RankUpdate", "RankUpdateRequest", "RankUpdateResponse", "RecomputeResponse",
    "ThreadResponse", "ThreadUpdate",
]
