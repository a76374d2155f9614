"""Reply resolution for mirrored posts.

Replies are linked in two passes. The first runs while a message is being
ingested and only keeps a link whose target post is already stored. The
second sweeps the thread after all of its messages have been written and
backfills links whose targets appeared later.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from forum_mirror.services.source import ForumSource, SourceError, SourceMessage
from forum_mirror.services.store import ForumStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplyLink:
    """Reply columns to store for a post."""

    reply_to_id: int | None = None
    reply_to_author_alias: str | None = None

    @property
    def linked(self) -> bool:
        return self.reply_to_id is not None


NO_REPLY = ReplyLink()


class ReplyResolver:
    """Resolve reply references for the messages of one sync run."""

    def __init__(
        self,
        store: ForumStore,
        source: ForumSource,
        alias_for: Callable[[int], str],
    ) -> None:
        self.store = store
        self.source = source
        self.alias_for = alias_for

    async def _referenced_alias(self, message: SourceMessage) -> str | None:
        try:
            referenced = await self.source.fetch_message(message.channel_id, message.reference_id)
        except SourceError as exc:
            logger.debug(
                "Could not fetch message %s referenced by %s: %s",
                message.reference_id,
                message.id,
                exc,
            )
            return None
        return self.alias_for(referenced.author_id)

    async def resolve(self, message: SourceMessage) -> ReplyLink:
        """First pass: return the reply link to store with ``message``.

        The link is cleared when the referenced post is not stored yet, so no
        row ever points at a missing post.
        """
        target_id = message.reference_id
        if target_id is None or target_id == message.id:
            return NO_REPLY

        alias = await self._referenced_alias(message)
        target = await self.store.get_post(target_id)
        if target is None:
            logger.debug(
                "Referenced message %s not stored yet, clearing reply of %s",
                target_id,
                message.id,
            )
            return NO_REPLY
        return ReplyLink(reply_to_id=target_id, reply_to_author_alias=alias or target.author_alias)

    async def heal(self, messages: Iterable[SourceMessage]) -> int:
        """Second pass: backfill reply links whose target has since been stored.

        Returns:
            Number of posts that gained a reply link.
        """
        healed = 0
        for message in messages:
            target_id = message.reference_id
            if target_id is None or target_id == message.id:
                continue
            post = await self.store.link_reply_if_missing(message.id, target_id)
            if post is not None:
                healed += 1
                logger.debug(
                    "Linked post %s to reply target %s (%s)",
                    message.id,
                    target_id,
                    post.reply_to_author_alias,
                )
        return healed
