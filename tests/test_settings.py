# tests/test_settings.py
"""Tests for environment-driven settings."""

from __future__ import annotations

from forum_mirror.core.settings import Settings


def test_defaults_use_sqlite(monkeypatch) -> None:
    for name in ("DATABASE_URL", "SYNC_RANK_ORDER"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings()
    assert settings.database_url.startswith("sqlite+aiosqlite")
    assert settings.sync_rank_order == "newest_first"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SYNC_PAGE_SIZE", "50")
    monkeypatch.setenv("ADMIN_API_TOKEN", "secret")

    settings = Settings()

    assert settings.sync_page_size == 50
    assert settings.admin_api_token == "secret"


def test_testing_database_override(monkeypatch) -> None:
    monkeypatch.setenv("USE_TEST_DATABASE", "true")
    monkeypatch.setenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test.db")

    assert Settings().effective_database_url == "sqlite+aiosqlite:///./test.db"


def test_sync_url_for_alembic(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@db/forum")
    assert Settings().database_url_sync == "postgresql+psycopg://u:p@db/forum"

    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./forum.db")
    assert Settings().database_url_sync == "sqlite:///./forum.db"
