"""Test configuration for the labyrinth sync project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import json
from collections.abc import Mapping
from typing import Any, Callable

import pytest

from labysync.gateway import LabyrinthSubmission, PageSubmission, RemoteGateway

READ_ONLY_CALLS = frozenset({"login", "logout"})


class FakeGateway(RemoteGateway):
    """In-memory stand-in for the site that records every call it receives."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.labyrinths: dict[str, LabyrinthSubmission] = {}
        self.pages: dict[str, PageSubmission] = {}
        self.predecessors: dict[str, set[tuple[str, int]]] = {}
        self.uploads: list[Path] = []
        self.selected_labyrinth: str | None = None
        self.logged_in = False
        self.missing_page_ids = False
        self._failures: dict[str, list[Exception]] = {}
        self._next_id = 100

    def fail_next(self, operation: str, error: Exception, *, times: int = 1) -> None:
        """Make the next ``times`` calls to ``operation`` raise ``error``."""

        self._failures.setdefault(operation, []).extend([error] * times)

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _allocate_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    def calls_to(self, operation: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == operation]

    @property
    def mutations(self) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] not in READ_ONLY_CALLS]

    def login(self) -> None:
        self._record("login")
        self.logged_in = True

    def logout(self) -> None:
        self._record("logout")
        self.logged_in = False

    def select_labyrinth(self, labyrinth_id: str) -> None:
        self.selected_labyrinth = labyrinth_id

    def create_labyrinth(self, submission: LabyrinthSubmission) -> str:
        self._record("create_labyrinth", submission.config.title)
        labyrinth_id = f"L{len(self.labyrinths) + 1}"
        self.labyrinths[labyrinth_id] = submission
        return labyrinth_id

    def update_labyrinth(self, labyrinth_id: str, submission: LabyrinthSubmission) -> None:
        self._record("update_labyrinth", labyrinth_id, submission.config.title)
        self.labyrinths[labyrinth_id] = submission

    def create_page(self, labyrinth_id: str, page: PageSubmission) -> str | None:
        self._record("create_page", labyrinth_id, page.title)
        page_id = self._allocate_id()
        self.pages[page_id] = page
        return None if self.missing_page_ids else page_id

    def update_page(self, labyrinth_id: str, page_id: str, page: PageSubmission) -> None:
        self._record("update_page", labyrinth_id, page_id, page.title)
        self.pages[page_id] = page

    def delete_page(self, labyrinth_id: str, page_id: str) -> bool:
        self._record("delete_page", labyrinth_id, page_id)
        self.predecessors.pop(page_id, None)
        return self.pages.pop(page_id, None) is not None

    def set_predecessor_link(
        self, labyrinth_id: str, target_id: str, source_id: str, position: int
    ) -> bool:
        self._record("set_predecessor_link", labyrinth_id, target_id, source_id, position)
        if source_id not in self.pages:
            return False
        self.predecessors.setdefault(target_id, set()).add((source_id, position))
        return True

    def clear_predecessor_links(self, labyrinth_id: str, target_id: str) -> None:
        self._record("clear_predecessor_links", labyrinth_id, target_id)
        self.predecessors[target_id] = set()

    def upload_asset(self, path: Path) -> str | None:
        self._record("upload_asset", Path(path).name)
        self.uploads.append(Path(path))
        return f"https://cdn.example.com/upload/{len(self.uploads)}{Path(path).suffix}"


def write_page(
    root: Path,
    name: str,
    *,
    html: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    """Write the content and/or metadata facet of page ``name`` under ``root``."""

    page_dir = root / "page"
    if html is not None:
        path = page_dir / f"{name}.html"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
    if metadata is not None:
        path = page_dir / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(metadata, ensure_ascii=False), encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    """Return an empty in-memory site."""

    return FakeGateway()


@pytest.fixture()
def content_tree(tmp_path: Path) -> Callable[..., Path]:
    """Factory fixture writing a content tree under ``tmp_path``.

    ``pages`` maps page names to ``(html, metadata)`` pairs; either half may
    be ``None`` to leave that facet out.
    """

    def _factory(
        config: Mapping[str, Any] | None = None,
        pages: Mapping[str, tuple[str | None, Mapping[str, Any] | None]] | None = None,
        *,
        files: Mapping[str, bytes] | None = None,
        account: bool = True,
    ) -> Path:
        root = tmp_path / "labyrinth"
        root.mkdir(exist_ok=True)
        settings = {"title": "Test Labyrinth"} if config is None else dict(config)
        (root / "labyrinth.json").write_text(
            json.dumps(settings, ensure_ascii=False), encoding="utf-8"
        )
        for name, (html, metadata) in (pages or {}).items():
            write_page(root, name, html=html, metadata=metadata)
        for relative, data in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        if account:
            (root / "account.json").write_text(
                json.dumps({"id": "author@example.com", "password": "secret"}),
                encoding="utf-8",
            )
        return root

    return _factory


__all__ = ["FakeGateway", "content_tree", "fake_gateway", "read_json", "write_page"]
