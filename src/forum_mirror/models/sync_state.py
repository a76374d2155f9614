"""System-level bookkeeping for sync runs."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from forum_mirror.db.session import Base

SYNC_STATE_ID = 1


class SyncState(Base):
    """Singleton row recording the last successful sync.

    ``lock_token``/``locked_at`` form an advisory run lock so two sync runs
    never walk the same channels at once.
    """

    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, default=SYNC_STATE_ID)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_first_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    lock_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
