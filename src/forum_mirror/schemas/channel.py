# src/forum_mirror/schemas/channel.py
"""Channel-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict


class ChannelResponse(BaseModel):
    """Schema for channel information returned by the API."""

    id: int
    slug: str
    name: str
    description: str | None
    position: int

    model_config = ConfigDict(from_attributes=True)
