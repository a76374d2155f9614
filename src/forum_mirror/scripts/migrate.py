# src/forum_mirror/scripts/migrate.py
"""Upgrade the configured database to the latest schema revision."""
from __future__ import annotations

import logging
import os

from alembic import command
from alembic.config import Config

from forum_mirror.core.settings import settings

PROJECT_ROOT = os.path.join(os.path.dirname(__file__), "..", "..", "..")

logger = logging.getLogger(__name__)


def build_config(database_url: str | None = None, *, configure_logger: bool = True) -> Config:
    cfg = Config(os.path.join(PROJECT_ROOT, "alembic.ini"))
    cfg.attributes["configure_logger"] = configure_logger
    # migrations/env.py drives the async engine itself
    cfg.set_main_option("sqlalchemy.url", database_url or settings.effective_database_url)
    cfg.set_main_option("script_location", os.path.abspath(os.path.join(PROJECT_ROOT, "migrations")))
    return cfg


def run_upgrade_head(database_url: str | None = None, *, configure_logger: bool = True) -> None:
    cfg = build_config(database_url, configure_logger=configure_logger)
    logger.info("Upgrading database schema to head")
    command.upgrade(cfg, "head")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_upgrade_head()
