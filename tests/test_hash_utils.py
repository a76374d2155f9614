# tests/test_hash_utils.py
"""Tests for author pseudonymisation helpers."""

from __future__ import annotations

from blake3 import blake3

from forum_mirror.utils import hash as hash_utils
from forum_mirror.utils.hash import StaffDirectory, author_alias

HEX_DIGEST_LENGTH = 64


def test_blake3_hexdigest() -> None:
    hexdigest = hash_utils.blake3_hexdigest(b"hex")
    assert isinstance(hexdigest, str)
    assert len(hexdigest) == HEX_DIGEST_LENGTH


def test_author_alias_is_salted_and_truncated() -> None:
    expected = blake3(b"pepper:12345").hexdigest()[:16]
    assert author_alias(12345, salt="pepper") == expected
    assert author_alias("12345", salt="pepper") == expected
    assert len(author_alias(12345, length=24)) == 24


def test_author_alias_depends_on_salt() -> None:
    assert author_alias(1, salt="a") != author_alias(1, salt="b")


def test_staff_directory_decorates_staff_aliases() -> None:
    staff = StaffDirectory({"42": "mod"})

    assert staff.alias_for(42, salt="s") == f"{author_alias(42, salt='s')[:8]}:mod"
    assert staff.alias_for(7, salt="s") == author_alias(7, salt="s")


def test_staff_directory_from_csv(tmp_path) -> None:
    path = tmp_path / "staff.csv"
    path.write_text("user_id,tag\n42,mod\n 43 , admin \n44,\n", encoding="utf-8")

    staff = StaffDirectory.from_csv(path)

    assert len(staff) == 2
    assert staff.tag_for(42) == "mod"
    assert staff.tag_for("43") == "admin"
    assert staff.tag_for(44) is None
