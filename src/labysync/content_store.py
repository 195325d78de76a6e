"""File access for a labyrinth content tree and its recorded sync state."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ValidationError

from .assets import AssetReference, find_asset_references
from .hashing import file_checksum, labyrinth_fingerprint, page_fingerprint
from .models import LabyrinthConfig, LabyrinthState, PageMetadata, PageState

CONFIG_FILE = "labyrinth.json"
STATE_FILE = "labyrinth.meta"
ACCOUNT_FILE = "account.json"
PAGE_DIR = "page"

CONTENT_SUFFIX = ".html"
METADATA_SUFFIX = ".json"
STATE_SUFFIX = ".meta"


class ConfigError(RuntimeError):
    """Raised when local files are missing, unreadable or malformed."""


@dataclass(frozen=True)
class Credentials:
    """Login details for the remote site."""

    email: str
    password: str = field(repr=False)


@dataclass
class LocalPage:
    """Everything known locally about one page."""

    name: str
    content: str | None = None
    raw_metadata: dict[str, Any] | None = None
    metadata: PageMetadata | None = None
    state: PageState | None = None
    assets: tuple[AssetReference, ...] = ()
    fingerprint: str | None = None

    @property
    def eligible(self) -> bool:
        """Return ``True`` when both content and metadata exist locally."""

        return self.content is not None and self.metadata is not None

    @property
    def remote_id(self) -> str | None:
        return self.state.remote_id if self.state is not None else None


class ContentStore:
    """Read and write the files of one content tree.

    Layout::

        <root>/labyrinth.json      author-edited settings
        <root>/labyrinth.meta      recorded labyrinth state
        <root>/account.json        optional credentials
        <root>/page/<name>.html    page content
        <root>/page/<name>.json    page metadata
        <root>/page/<name>.meta    recorded page state
    """

    def __init__(self, root: Path) -> None:
        root_path = Path(root)
        if not root_path.exists():
            raise ConfigError(f"Content folder not found: {root_path}")
        if not root_path.is_dir():
            raise ConfigError(f"Content folder must be a directory: {root_path}")
        self.root = root_path.resolve()
        self.page_dir = self.root / PAGE_DIR

    # Page inventory -----------------------------------------------------

    def content_names(self) -> list[str]:
        return self._page_names(CONTENT_SUFFIX)

    def metadata_names(self) -> list[str]:
        return self._page_names(METADATA_SUFFIX)

    def state_names(self) -> list[str]:
        return self._page_names(STATE_SUFFIX)

    def _page_names(self, suffix: str) -> list[str]:
        if not self.page_dir.is_dir():
            return []
        names = []
        for path in self.page_dir.rglob(f"*{suffix}"):
            if path.is_file():
                relative = path.relative_to(self.page_dir).as_posix()
                names.append(relative[: -len(suffix)])
        return sorted(names)

    # Page facets --------------------------------------------------------

    def read_content(self, name: str) -> str | None:
        path = self._page_path(name, CONTENT_SUFFIX)
        if not path.is_file():
            return None
        return _read_text(path)

    def read_metadata(self, name: str) -> tuple[dict[str, Any], PageMetadata] | None:
        path = self._page_path(name, METADATA_SUFFIX)
        if not path.is_file():
            return None
        raw = _read_json_object(path)
        return raw, _parse_model(PageMetadata, raw, path)

    def read_page_state(self, name: str) -> PageState | None:
        path = self._page_path(name, STATE_SUFFIX)
        if not path.is_file():
            return None
        return _parse_model(PageState, _read_json_object(path), path)

    def write_page_state(self, name: str, state: PageState) -> None:
        path = self._page_path(name, STATE_SUFFIX)
        path.parent.mkdir(parents=True, exist_ok=True)
        _write_json(path, state.to_payload())

    def delete_page_state(self, name: str) -> bool:
        path = self._page_path(name, STATE_SUFFIX)
        if path.exists():
            path.unlink()
            return True
        return False

    def _page_path(self, name: str, suffix: str) -> Path:
        validated = _validate_page_name(name)
        path = (self.page_dir / f"{validated}{suffix}").resolve()
        if self.page_dir.resolve() not in path.parents:
            raise ValueError(f"Page name '{name}' escapes the page directory")
        return path

    # Labyrinth files ----------------------------------------------------

    def load_config(self) -> LabyrinthConfig:
        path = self.root / CONFIG_FILE
        if not path.is_file():
            raise ConfigError(f"{CONFIG_FILE} not found: {path}")
        return _parse_model(LabyrinthConfig, _read_json_object(path), path)

    def load_state(self) -> LabyrinthState | None:
        """Return the recorded labyrinth state, or ``None`` before the first sync."""

        path = self.root / STATE_FILE
        if not path.is_file():
            return None
        return _parse_model(LabyrinthState, _read_json_object(path), path)

    def save_state(self, state: LabyrinthState) -> None:
        _write_json(self.root / STATE_FILE, state.to_payload())

    def title_image_path(self, config: LabyrinthConfig) -> Path | None:
        if not config.image:
            return None
        return (self.root / config.image.lstrip("/\\")).resolve()

    def config_fingerprint(self, config: LabyrinthConfig) -> str:
        image_path = self.title_image_path(config)
        checksum = (
            file_checksum(image_path)
            if image_path is not None and image_path.is_file()
            else None
        )
        return labyrinth_fingerprint(config.model_dump(mode="json"), checksum)

    def load_credentials(self, environ: Mapping[str, str] | None = None) -> Credentials:
        """Return login details from the environment or ``account.json``.

        ``LABYSYNC_EMAIL`` and ``LABYSYNC_PASSWORD`` take precedence over the
        file. The file may name the login either ``email`` or ``id``.
        """

        source = environ if environ is not None else os.environ
        email = (source.get("LABYSYNC_EMAIL") or "").strip()
        password = source.get("LABYSYNC_PASSWORD") or ""
        if email and password:
            return Credentials(email=email, password=password)

        path = self.root / ACCOUNT_FILE
        if not path.is_file():
            raise ConfigError(
                f"{ACCOUNT_FILE} not found in {self.root}. Create it with "
                '{"id": "email", "password": "password"} or set '
                "LABYSYNC_EMAIL and LABYSYNC_PASSWORD."
            )
        account = _read_json_object(path)
        user = account.get("email") or account.get("id")
        secret = account.get("password")
        if not isinstance(user, str) or not user.strip() or not isinstance(secret, str) or not secret:
            raise ConfigError(f"{ACCOUNT_FILE} must have id/email and password fields")
        return Credentials(email=user.strip(), password=secret)

    # Aggregate loading --------------------------------------------------

    def load_pages(self, *, include_state: bool = True) -> dict[str, LocalPage]:
        """Load every page that has at least one facet on disk.

        Eligible pages get their asset references and fingerprint computed.
        With ``include_state`` disabled, recorded page state is ignored, which
        is how a content tree is treated before its labyrinth exists remotely.
        """

        content_names = self.content_names()
        metadata_names = self.metadata_names()
        state_names = self.state_names() if include_state else []

        pages: dict[str, LocalPage] = {}
        for name in sorted(set(content_names) | set(metadata_names) | set(state_names)):
            page = LocalPage(name=name)
            page.content = self.read_content(name)
            metadata = self.read_metadata(name)
            if metadata is not None:
                page.raw_metadata, page.metadata = metadata
            if include_state:
                page.state = self.read_page_state(name)
            if page.eligible:
                page.assets = tuple(self._page_assets(page))
                page.fingerprint = page_fingerprint(
                    page.content or "",
                    page.raw_metadata or {},
                    (asset.checksum for asset in page.assets),
                )
            pages[name] = page
        return pages

    def _page_assets(self, page: LocalPage) -> Iterable[AssetReference]:
        yield from find_asset_references(page.content or "", self.root)
        if page.metadata is not None:
            for answer in page.metadata.answers:
                yield from find_asset_references(answer.explanation, self.root)


def _validate_page_name(name: str) -> str:
    if not isinstance(name, str):
        raise TypeError("page name must be a string")
    stripped = name.strip().strip("/")
    if not stripped:
        raise ValueError("page name must be a non-empty string")
    return stripped


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc


def _read_json_object(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(_read_text(path))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return payload


def _parse_model(model: type[BaseModel], payload: dict[str, Any], path: Path) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '(root)'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigError(f"Malformed {path.name}: {problems}") from exc


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.write_text(
        json.dumps(payload, indent=4, ensure_ascii=False) + "\n", encoding="utf-8"
    )


__all__ = [
    "ACCOUNT_FILE",
    "CONFIG_FILE",
    "ConfigError",
    "ContentStore",
    "Credentials",
    "LocalPage",
    "PAGE_DIR",
    "STATE_FILE",
]
