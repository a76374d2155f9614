# tests/test_migrations.py
"""The Alembic revision chain builds the same tables as the ORM metadata."""

from __future__ import annotations

from sqlalchemy import create_engine, inspect

from forum_mirror.db.session import Base
from forum_mirror.scripts.migrate import run_upgrade_head


def test_upgrade_head_creates_schema(tmp_path) -> None:
    db_path = tmp_path / "migrated.db"

    run_upgrade_head(f"sqlite+aiosqlite:///{db_path}", configure_logger=False)

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        thread_indexes = {index["name"] for index in inspector.get_indexes("thread")}
    finally:
        engine.dispose()

    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables
    assert {"ix_thread_channel_id", "ix_thread_channel_rank"} <= thread_indexes
