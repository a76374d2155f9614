# src/forum_mirror/scripts/sync.py
"""Run one sync of the configured forum channels.

The Discord client only logs in over HTTP; no gateway connection is opened,
so the run suits a cron job or serverless trigger.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta

import discord

from forum_mirror.core.settings import settings
from forum_mirror.services.content import ContentTransformer, HttpImageProbe
from forum_mirror.services.discord_source import DiscordForumSource
from forum_mirror.services.ranking import RankAssigner, RankOrder
from forum_mirror.services.store import ForumStore
from forum_mirror.services.sync import SyncOptions, SyncOrchestrator, SyncStats
from forum_mirror.services.sync_state import DEFAULT_LOCK_TTL, SyncLockError, SyncStateStore
from forum_mirror.utils.hash import StaffDirectory

logger = logging.getLogger("forum_mirror.sync")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mirror forum channels into the database")
    parser.add_argument(
        "--force-full",
        action="store_true",
        help="Run a full sync even when a previous run was recorded.",
    )
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--guild", type=int, help="Discover and sync every forum channel of a guild (default: DISCORD_GUILD_ID).")
    scope.add_argument("--channel", type=int, help="Sync a single forum channel.")
    scope.add_argument("--thread", type=int, help="Sync a single thread.")
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Leave threads that are already stored untouched.",
    )
    parser.add_argument(
        "--archived-limit",
        type=int,
        default=None,
        help="Maximum number of archived threads to fetch per channel.",
    )
    parser.add_argument(
        "--fill-missing-ranks",
        action="store_true",
        help="Give threads without a rank the next free ranks in their channel.",
    )
    parser.add_argument(
        "--recompute-ranks",
        action="store_true",
        help="Renumber every channel's thread ranks after the sync.",
    )
    parser.add_argument(
        "--rank-order",
        choices=[order.value for order in RankOrder],
        default=settings.sync_rank_order,
        help="Order used by --recompute-ranks.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def build_orchestrator(
    store: ForumStore,
    source: DiscordForumSource,
    transformer: ContentTransformer,
) -> SyncOrchestrator:
    """Wire an orchestrator from the environment settings."""
    staff = (
        StaffDirectory.from_csv(settings.staff_csv_path)
        if settings.staff_csv_path
        else StaffDirectory()
    )
    return SyncOrchestrator(
        store,
        source,
        transformer,
        alias_salt=settings.author_alias_salt,
        alias_length=settings.author_alias_length,
        staff=staff,
        page_size=settings.sync_page_size,
        archived_page_size=settings.sync_archived_page_size,
        page_delay=settings.sync_page_delay_seconds,
        lock_ttl=timedelta(seconds=settings.sync_lock_ttl_seconds),
    )


def build_options(args: argparse.Namespace) -> SyncOptions:
    guild_id = args.guild
    if guild_id is None and args.channel is None and args.thread is None:
        guild_id = settings.discord_guild_id
    return SyncOptions(
        guild_id=guild_id,
        channel_id=args.channel,
        thread_id=args.thread,
        force_full=args.force_full,
        skip_existing=args.skip_existing,
        archived_limit=args.archived_limit,
    )


async def run_rank_maintenance(
    store: ForumStore,
    *,
    fill_missing: bool = False,
    recompute_order: RankOrder | None = None,
    lock_ttl: timedelta = DEFAULT_LOCK_TTL,
) -> None:
    """Repair and renumber ranks while holding the sync run lock.

    Raises:
        SyncLockError: If a sync run is in progress.
    """
    assigner = RankAssigner(store)
    async with SyncStateStore(store, lock_ttl=lock_ttl).run_lock():
        if fill_missing:
            await assigner.fill_missing()
        if recompute_order is not None:
            ranked = await assigner.recompute_all(recompute_order)
            logger.info("Recomputed ranks in %d channels (%s)", len(ranked), recompute_order.value)


async def run_sync(args: argparse.Namespace) -> SyncStats:
    if not settings.discord_token:
        raise SystemExit("DISCORD_TOKEN is not set")

    options = build_options(args)
    store = ForumStore.from_url(settings.effective_database_url, echo=settings.sql_debug)
    probe = HttpImageProbe(
        timeout=settings.image_probe_timeout_seconds,
        max_bytes=settings.image_probe_max_bytes,
    )
    intents = discord.Intents.default()
    intents.message_content = True
    try:
        await store.create_schema()
        async with discord.Client(intents=intents) as client:
            await client.login(settings.discord_token)
            orchestrator = build_orchestrator(
                store, DiscordForumSource(client), ContentTransformer(probe)
            )
            stats = await orchestrator.run(options)
        if args.fill_missing_ranks or args.recompute_ranks:
            await run_rank_maintenance(
                store,
                fill_missing=args.fill_missing_ranks,
                recompute_order=RankOrder(args.rank_order) if args.recompute_ranks else None,
                lock_ttl=timedelta(seconds=settings.sync_lock_ttl_seconds),
            )
        return stats
    finally:
        await probe.close()
        await store.dispose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        stats = asyncio.run(run_sync(args))
    except SyncLockError as exc:
        logger.error("%s", exc)
        return 2
    print(json.dumps(stats.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
