"""Tests for page classification."""

from __future__ import annotations

import itertools

import pytest

from labysync.classifier import PageStatus, classify_pages


def _classify(
    contents=(), metadata=(), states=(), known=(), recorded=None
):
    return classify_pages(contents, metadata, states, known, recorded or {})


def test_complete_page_with_known_id_is_normal() -> None:
    inventory = _classify(["start"], ["start"], ["start"], ["10"], {"start": "10"})

    assert inventory.names(PageStatus.NORMAL) == ["start"]
    assert inventory.entries[0].remote_id == "10"
    assert inventory.of(PageStatus.ORPHAN_REMOTE_ID) == ()


def test_complete_page_without_state_is_new() -> None:
    inventory = _classify(["start"], ["start"])

    assert inventory.names(PageStatus.NEW) == ["start"]


def test_state_without_id_counts_as_new() -> None:
    inventory = _classify(["start"], ["start"], ["start"], [], {"start": None})

    entry = inventory.entries[0]
    assert entry.status is PageStatus.NEW
    assert entry.has_state is True
    assert entry.deletion_id is None


def test_unknown_recorded_id_is_recreated() -> None:
    inventory = _classify(["start"], ["start"], ["start"], ["11"], {"start": "10"})

    assert inventory.names(PageStatus.IDS_MISSING) == ["start"]
    assert [entry.remote_id for entry in inventory.of(PageStatus.ORPHAN_REMOTE_ID)] == ["11"]


@pytest.mark.parametrize(
    ("contents", "metadata", "expected"),
    [
        (["page"], [], PageStatus.JSON_MISSING),
        ([], ["page"], PageStatus.HTML_MISSING),
        ([], [], PageStatus.RESIDUAL_STATE),
    ],
)
def test_incomplete_pages_release_their_tracked_id(contents, metadata, expected) -> None:
    inventory = _classify(contents, metadata, ["page"], ["7"], {"page": "7"})

    entry = inventory.entries[0]
    assert entry.status is expected
    assert entry.deletion_id == "7"
    assert entry.removes_state is True
    assert inventory.of(PageStatus.ORPHAN_REMOTE_ID) == ()


def test_incomplete_page_without_state_deletes_nothing() -> None:
    inventory = _classify(["draft"], [], [], [], {})

    entry = inventory.entries[0]
    assert entry.status is PageStatus.JSON_MISSING
    assert entry.deletion_id is None
    assert entry.removes_state is False


def test_residual_state_with_untracked_id_only_removes_the_file() -> None:
    inventory = _classify([], [], ["gone"], [], {"gone": "9"})

    entry = inventory.entries[0]
    assert entry.status is PageStatus.RESIDUAL_STATE
    assert entry.deletion_id is None
    assert entry.removes_state is True


def test_known_ids_without_state_are_orphans() -> None:
    inventory = _classify(["a"], ["a"], ["a"], ["1", "2", "3"], {"a": "1"})

    orphans = [entry.remote_id for entry in inventory.of(PageStatus.ORPHAN_REMOTE_ID)]
    assert orphans == ["2", "3"]
    assert all(entry.deletion_id == entry.remote_id for entry in inventory.of(PageStatus.ORPHAN_REMOTE_ID))


def test_duplicate_claims_keep_the_first_name() -> None:
    inventory = _classify(
        ["a", "b"], ["a", "b"], ["a", "b"], ["5"], {"a": "5", "b": "5"}
    )

    assert inventory.names(PageStatus.NORMAL) == ["a"]
    assert inventory.names(PageStatus.NEW) == ["b"]


def test_counts_cover_every_status() -> None:
    inventory = _classify(["a", "b"], ["a"], ["a"], ["1", "2"], {"a": "1"})

    counts = inventory.counts()
    assert set(counts) == set(PageStatus)
    assert counts[PageStatus.NORMAL] == 1
    assert counts[PageStatus.JSON_MISSING] == 1
    assert counts[PageStatus.ORPHAN_REMOTE_ID] == 1


def test_every_name_and_known_id_is_classified_exactly_once() -> None:
    facets = list(itertools.product([False, True], repeat=3))
    id_modes = ["none", "known", "unknown"]

    contents, metadata, states = [], [], []
    recorded: dict[str, str | None] = {}
    known = ["900", "901"]
    for index, ((has_content, has_metadata, has_state), mode) in enumerate(
        itertools.product(facets, id_modes)
    ):
        if not (has_content or has_metadata or has_state):
            continue
        name = f"page{index}"
        if has_content:
            contents.append(name)
        if has_metadata:
            metadata.append(name)
        if has_state:
            states.append(name)
            if mode != "none":
                recorded[name] = str(index)
                if mode == "known":
                    known.append(str(index))

    inventory = classify_pages(contents, metadata, states, known, recorded)

    names = [entry.name for entry in inventory.entries if entry.name is not None]
    assert sorted(names) == sorted(set(contents) | set(metadata) | set(states))
    assert len(names) == len(set(names))

    accounted = [entry.remote_id for entry in inventory.entries if entry.tracked]
    assert sorted(accounted) == sorted(known)
