"""Tests for reading and writing content trees."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import read_json
from labysync.content_store import ConfigError, ContentStore
from labysync.models import LabyrinthState, PageState
from labysync.reconciler import prepare_sync


def test_missing_folder_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        ContentStore(tmp_path / "missing")


def test_page_names_include_nested_folders(content_tree) -> None:
    root = content_tree(
        pages={
            "start": ("<p>start</p>", {"title": "Start"}),
            "chapter1/hall": ("<p>hall</p>", None),
            "chapter1/notes": (None, {"title": "Notes"}),
        }
    )
    store = ContentStore(root)

    assert store.content_names() == ["chapter1/hall", "start"]
    assert store.metadata_names() == ["chapter1/notes", "start"]
    assert store.state_names() == []


def test_load_config_applies_defaults(content_tree) -> None:
    store = ContentStore(content_tree({"title": "Maze", "custom_flag": 1}))

    config = store.load_config()

    assert config.title == "Maze"
    assert config.allow_rating is True
    assert config.clear_visibility == "full"
    assert config.rating_threshold == 1
    assert config.model_dump()["custom_flag"] == 1


def test_malformed_json_is_reported_with_path(content_tree) -> None:
    root = content_tree()
    (root / "labyrinth.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid JSON"):
        ContentStore(root).load_config()


def test_non_object_metadata_is_rejected(content_tree) -> None:
    root = content_tree()
    (root / "page").mkdir()
    (root / "page" / "start.json").write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ConfigError, match="must contain a JSON object"):
        ContentStore(root).read_metadata("start")


def test_state_round_trip_uses_site_field_names(content_tree) -> None:
    root = content_tree()
    store = ContentStore(root)

    assert store.load_state() is None

    state = LabyrinthState(remote_id="42", config_hash="abc")
    state.add_page_id("7")
    state.add_page_id("7")
    state.asset_cache["sum"] = "https://cdn/1.png"
    store.save_state(state)

    text = (root / "labyrinth.meta").read_text(encoding="utf-8")
    assert text.endswith("\n")
    assert text.startswith('{\n    "id": "42"')
    assert json.loads(text) == {
        "id": "42",
        "hash": "abc",
        "images": {"sum": "https://cdn/1.png"},
        "pageIds": ["7"],
        "pendingLinks": [],
    }
    assert store.load_state() == state


def test_numeric_ids_in_existing_state_are_read_as_strings(content_tree) -> None:
    root = content_tree()
    (root / "labyrinth.meta").write_text(
        json.dumps({"id": 42, "hash": "h", "pageIds": [7, "7", 8]}), encoding="utf-8"
    )

    state = ContentStore(root).load_state()

    assert state is not None
    assert state.remote_id == "42"
    assert state.known_page_ids == ["7", "8"]


def test_page_state_write_and_delete(content_tree) -> None:
    root = content_tree()
    store = ContentStore(root)

    store.write_page_state(
        "chapter1/hall",
        PageState(remote_id="9", content_hash="h", is_first=False, targets=["end"]),
    )

    assert read_json(root / "page" / "chapter1" / "hall.meta") == {
        "id": "9",
        "hash": "h",
        "is_first": False,
        "is_ending": False,
        "targets": ["end"],
    }
    assert store.read_page_state("chapter1/hall").remote_id == "9"
    assert store.delete_page_state("chapter1/hall") is True
    assert store.delete_page_state("chapter1/hall") is False


def test_page_names_cannot_escape_the_page_folder(content_tree) -> None:
    store = ContentStore(content_tree())

    with pytest.raises(ValueError):
        store.read_content("../labyrinth")


def test_load_pages_fingerprints_only_eligible_pages(content_tree) -> None:
    root = content_tree(
        pages={
            "start": ('<img src="img/door.png">', {"title": "Start"}),
            "draft": ("<p>draft</p>", None),
        },
        files={"img/door.png": b"door"},
    )

    pages = ContentStore(root).load_pages()

    assert pages["start"].eligible
    assert pages["start"].fingerprint is not None
    assert [asset.reference for asset in pages["start"].assets] == ["img/door.png"]
    assert not pages["draft"].eligible
    assert pages["draft"].fingerprint is None


def test_asset_changes_change_the_fingerprint(content_tree) -> None:
    root = content_tree(
        pages={"start": ('<img src="door.png">', {"title": "Start"})},
        files={"door.png": b"v1"},
    )
    store = ContentStore(root)
    before = store.load_pages()["start"].fingerprint

    (root / "door.png").write_bytes(b"v2")

    assert store.load_pages()["start"].fingerprint != before


def test_explanation_assets_count_towards_the_fingerprint(content_tree) -> None:
    metadata = {
        "title": "Start",
        "answers": [{"answer": "look", "explanation": '<img src="hint.png">'}],
    }
    root = content_tree(pages={"start": ("<p>start</p>", metadata)}, files={"hint.png": b"a"})
    store = ContentStore(root)
    before = store.load_pages()["start"]

    (root / "hint.png").write_bytes(b"b")
    after = store.load_pages()["start"]

    assert [asset.reference for asset in before.assets] == ["hint.png"]
    assert before.fingerprint != after.fingerprint


def test_load_pages_can_ignore_recorded_state(content_tree) -> None:
    root = content_tree(pages={"start": ("<p>s</p>", {"title": "Start"})})
    store = ContentStore(root)
    store.write_page_state("start", PageState(remote_id="1"))

    assert store.load_pages()["start"].remote_id == "1"
    assert store.load_pages(include_state=False)["start"].state is None


def test_credentials_prefer_environment(content_tree) -> None:
    store = ContentStore(content_tree())

    from_env = store.load_credentials(
        {"LABYSYNC_EMAIL": "env@example.com", "LABYSYNC_PASSWORD": "pw"}
    )
    from_file = store.load_credentials({})

    assert (from_env.email, from_env.password) == ("env@example.com", "pw")
    assert (from_file.email, from_file.password) == ("author@example.com", "secret")
    assert "secret" not in repr(from_file)


def test_missing_account_file_is_a_config_error(content_tree) -> None:
    store = ContentStore(content_tree(account=False))

    with pytest.raises(ConfigError, match="account.json not found"):
        store.load_credentials({})


def test_title_image_is_part_of_config_fingerprint(content_tree) -> None:
    root = content_tree({"title": "Maze", "image": "cover.png"}, files={"cover.png": b"one"})
    store = ContentStore(root)
    config = store.load_config()
    before = store.config_fingerprint(config)

    (root / "cover.png").write_bytes(b"two")

    assert store.config_fingerprint(config) != before


def test_undecodable_page_content_is_a_config_error(content_tree) -> None:
    root = content_tree(pages={"start": (None, {"title": "Start"})})
    (root / "page" / "start.html").write_bytes(b"<p>\xff\xfe caf\xe9</p>")

    with pytest.raises(ConfigError, match="Cannot read .*start.html"):
        prepare_sync(ContentStore(root))
