"""SQLAlchemy model for mirrored forum threads."""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_mirror.db.session import Base
from forum_mirror.db.time import utcnow


class Thread(Base):
    """A forum thread together with its starter message.

    ``rank`` is the display sort key within the owning channel. It is only
    written by the rank assignment paths; content updates leave it alone.
    """

    __tablename__ = "thread"
    __table_args__ = (Index("ix_thread_channel_rank", "channel_id", "rank"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    channel_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("channel.id"),
        nullable=False,
        index=True,
    )
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    author_alias: Mapped[str] = mapped_column(Text, nullable=False)
    body_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Tag names in the order they were applied upstream.
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    # Materialised count of stored posts not written by the thread author.
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
