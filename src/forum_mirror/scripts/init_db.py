# src/forum_mirror/scripts/init_db.py
"""Create every table directly from the models, bypassing Alembic."""
from __future__ import annotations

import argparse
import asyncio

from forum_mirror.core.settings import settings
from forum_mirror.db.session import create_engine_for, create_tables, drop_tables


async def init_db(url: str, *, drop: bool = False) -> None:
    """Create the schema at ``url``, optionally dropping existing tables first."""
    engine = create_engine_for(url, echo=settings.sql_debug)
    try:
        if drop:
            await drop_tables(engine)
        await create_tables(engine)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the forum mirror tables")
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop all tables before creating them.",
    )
    args = parser.parse_args()
    asyncio.run(init_db(settings.effective_database_url, drop=args.drop_tables))
    print("Database initialized.")


if __name__ == "__main__":
    main()
