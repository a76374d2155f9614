# src/forum_mirror/utils/hash.py
"""Hashing helpers used to pseudonymise source-platform authors."""

from __future__ import annotations

import csv
import logging
from collections.abc import Mapping
from pathlib import Path

from blake3 import blake3

logger = logging.getLogger(__name__)

DEFAULT_ALIAS_LENGTH = 16
STAFF_ALIAS_PREFIX_LENGTH = 8


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal BLAKE3 digest of the supplied data."""
    return blake3(data).hexdigest()


def author_alias(
    user_id: int | str,
    *,
    salt: str = "",
    length: int = DEFAULT_ALIAS_LENGTH,
) -> str:
    """Return the stable alias for a source-platform user id.

    The same ``user_id`` and ``salt`` always produce the same alias, which keeps
    the denormalised reply-author column consistent across runs.
    """
    payload = f"{salt}:{user_id}".encode()
    return blake3_hexdigest(payload)[:length]


class StaffDirectory:
    """Maps source user ids to a staff tag shown next to their alias."""

    def __init__(self, tags: Mapping[str, str] | None = None) -> None:
        self._tags = {str(key): value for key, value in (tags or {}).items() if value}

    def __len__(self) -> int:
        return len(self._tags)

    @classmethod
    def from_csv(cls, path: str | Path) -> StaffDirectory:
        """Load a directory from a CSV file with ``user_id`` and ``tag`` columns."""
        tags: dict[str, str] = {}
        with Path(path).open(newline="", encoding="utf-8") as handle:
            for row in csv.DictReader(handle):
                user_id = (row.get("user_id") or "").strip()
                tag = (row.get("tag") or "").strip()
                if user_id and tag:
                    tags[user_id] = tag
        logger.info("Loaded %d staff tags from %s", len(tags), path)
        return cls(tags)

    def tag_for(self, user_id: int | str) -> str | None:
        """Return the staff tag for ``user_id`` if one is configured."""
        return self._tags.get(str(user_id))

    def alias_for(
        self,
        user_id: int | str,
        *,
        salt: str = "",
        length: int = DEFAULT_ALIAS_LENGTH,
    ) -> str:
        """Return the display alias, decorated with the staff tag when present."""
        alias = author_alias(user_id, salt=salt, length=length)
        tag = self.tag_for(user_id)
        if tag:
            return f"{alias[:STAFF_ALIAS_PREFIX_LENGTH]}:{tag}"
        return alias
