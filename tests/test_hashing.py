"""Tests for the change-detection fingerprints."""

from __future__ import annotations

import hashlib
from pathlib import Path

from labysync.hashing import (
    canonical_json,
    file_checksum,
    labyrinth_fingerprint,
    page_fingerprint,
)


def test_canonical_json_ignores_key_order() -> None:
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert canonical_json({"title": "미궁"}) == '{"title":"미궁"}'


def test_file_checksum_matches_md5_of_bytes(tmp_path: Path) -> None:
    image = tmp_path / "door.png"
    image.write_bytes(b"\x89PNG fake image bytes")

    assert file_checksum(image) == hashlib.md5(b"\x89PNG fake image bytes").hexdigest()


def test_page_fingerprint_is_deterministic() -> None:
    metadata = {"title": "Start", "answers": [{"answer": "go", "next": "end"}]}

    first = page_fingerprint("<p>Hello</p>", metadata, ["bbb", "aaa"])
    second = page_fingerprint("<p>Hello</p>", dict(reversed(list(metadata.items()))), ["aaa", "bbb", "aaa"])

    assert first == second


def test_page_fingerprint_changes_with_each_input() -> None:
    base = page_fingerprint("<p>Hello</p>", {"title": "Start"}, ["aaa"])

    assert page_fingerprint("<p>Hello!</p>", {"title": "Start"}, ["aaa"]) != base
    assert page_fingerprint("<p>Hello</p>", {"title": "Begin"}, ["aaa"]) != base
    assert page_fingerprint("<p>Hello</p>", {"title": "Start"}, ["ccc"]) != base
    assert page_fingerprint("<p>Hello</p>", {"title": "Start"}) != base


def test_labyrinth_fingerprint_covers_title_image() -> None:
    config = {"title": "Maze", "tags": ["story"]}

    assert labyrinth_fingerprint(config) == labyrinth_fingerprint(dict(config))
    assert labyrinth_fingerprint(config, "abc") != labyrinth_fingerprint(config, "abd")
    assert labyrinth_fingerprint(config) != labyrinth_fingerprint({**config, "title": "Maze 2"})
