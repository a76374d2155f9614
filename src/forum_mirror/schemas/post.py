# src/forum_mirror/schemas/post.py
"""Post-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PostResponse(BaseModel):
    """Schema for post information returned by the API."""

    id: int
    thread_id: int
    author_alias: str
    body_html: str
    reply_to_id: int | None
    reply_to_author_alias: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
