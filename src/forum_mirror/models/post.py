"""SQLAlchemy model for mirrored thread replies."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_mirror.db.session import Base


class Post(Base):
    """A non-starter message inside a thread."""

    __tablename__ = "post"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    thread_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("thread.id"),
        nullable=False,
        index=True,
    )
    author_alias: Mapped[str] = mapped_column(Text, nullable=False)
    body_html: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Only ever points at a stored post; unresolved replies stay NULL until healed.
    reply_to_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("post.id"),
        nullable=True,
    )
    reply_to_author_alias: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
