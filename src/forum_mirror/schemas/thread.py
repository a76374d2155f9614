# src/forum_mirror/schemas/thread.py
"""Thread-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ThreadResponse(BaseModel):
    """Schema for thread information returned by the API."""

    id: int
    channel_id: int
    slug: str
    title: str
    author_alias: str
    body_html: str | None
    tags: list[str] | None
    reply_count: int
    rank: int | None
    published: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadUpdate(BaseModel):
    """Staff edit of a thread's content. Rank is not editable here."""

    title: str | None = Field(None, min_length=1, max_length=500)
    body_html: str | None = Field(None, alias="bodyHtml")
    author_alias: str | None = Field(None, alias="authorAlias", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _require_change(self) -> "ThreadUpdate":
        if self.title is None and self.body_html is None and self.author_alias is None:
            raise ValueError("At least one of title, bodyHtml or authorAlias is required")
        return self


class PublishToggle(BaseModel):
    """Request body for publishing or unpublishing a thread."""

    published: bool
