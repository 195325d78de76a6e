"""Discovery, upload and substitution of images referenced from page markup."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, MutableMapping, TypeVar

from .gateway import RemoteError, RemoteGateway
from .hashing import file_checksum
from .reporting import NullReporter, SyncReporter

UPLOADABLE_EXTENSIONS = frozenset({"bmp", "jpg", "jpeg", "gif", "png"})
MAX_ASSET_BYTES = 2 * 1024 * 1024

_IMAGE_SUFFIX = r"\.(?:png|jpe?g|gif|webp|bmp)"
_SRC_PATTERN = re.compile(
    r"""src=(["'])([^"']+""" + _IMAGE_SUFFIX + r""")\1""", re.IGNORECASE
)
_URL_PATTERN = re.compile(
    r"""url\(\s*(["']?)([^"')]+""" + _IMAGE_SUFFIX + r""")\1\s*\)""", re.IGNORECASE
)
_REMOTE_PREFIXES = ("http://", "https://", "//", "data:")

T = TypeVar("T")
RemoteCaller = Callable[[Callable[[], T]], T]


@dataclass(frozen=True)
class AssetReference:
    """A local image referenced from markup, as written and as resolved."""

    reference: str
    path: Path
    checksum: str


def is_remote_reference(reference: str) -> bool:
    return reference.strip().lower().startswith(_REMOTE_PREFIXES)


def resolve_asset_path(reference: str, root: Path) -> Path:
    """Resolve ``reference`` against the content root.

    References starting with ``/`` are rooted at the content root as well, so
    a content tree stays relocatable.
    """

    relative = reference.strip().lstrip("/\\")
    return (Path(root) / relative).resolve()


def find_asset_references(markup: str, root: Path) -> list[AssetReference]:
    """Return local images referenced by ``src=`` or CSS ``url()`` in ``markup``.

    Remote URLs and references to files that do not exist are ignored. Each
    reference string appears at most once, in document order.
    """

    if not markup:
        return []

    found: dict[str, AssetReference] = {}
    for pattern in (_SRC_PATTERN, _URL_PATTERN):
        for match in pattern.finditer(markup):
            reference = match.group(2)
            if reference in found or is_remote_reference(reference):
                continue
            path = resolve_asset_path(reference, root)
            if not path.is_file():
                continue
            found[reference] = AssetReference(
                reference=reference, path=path, checksum=file_checksum(path)
            )
    return sorted(found.values(), key=lambda asset: markup.find(asset.reference))


def replace_asset_references(markup: str, replacements: Mapping[str, str]) -> str:
    """Substitute uploaded URLs for the local references they replace."""

    if not replacements:
        return markup

    def _src(match: re.Match[str]) -> str:
        url = replacements.get(match.group(2))
        return match.group(0) if url is None else f'src="{url}"'

    def _url(match: re.Match[str]) -> str:
        url = replacements.get(match.group(2))
        return match.group(0) if url is None else f'url("{url}")'

    return _URL_PATTERN.sub(_url, _SRC_PATTERN.sub(_src, markup))


def check_uploadable(path: Path) -> str | None:
    """Return why ``path`` cannot be uploaded, or ``None`` when it can."""

    extension = path.suffix.lower().lstrip(".")
    if extension not in UPLOADABLE_EXTENSIONS:
        allowed = ", ".join(sorted(UPLOADABLE_EXTENSIONS))
        return f"Unsupported image format: {extension or '(none)'} (allowed: {allowed})"
    size = path.stat().st_size
    if size > MAX_ASSET_BYTES:
        return (
            f"Image too large: {size / 1024 / 1024:.2f}MB "
            f"(max: {MAX_ASSET_BYTES // (1024 * 1024)}MB)"
        )
    return None


def _call_directly(operation: Callable[[], T]) -> T:
    return operation()


class AssetUploadCache:
    """Upload each distinct image once per labyrinth, keyed by checksum.

    ``cache`` is the persisted checksum to URL mapping; it is only ever
    appended to, so callers can save it after any upload.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        root: Path,
        cache: MutableMapping[str, str] | None = None,
        *,
        caller: RemoteCaller | None = None,
        reporter: SyncReporter | None = None,
    ) -> None:
        self._gateway = gateway
        self._root = Path(root)
        self._cache: MutableMapping[str, str] = cache if cache is not None else {}
        self._call = caller or _call_directly
        self._reporter = reporter or NullReporter()
        self.uploaded = 0
        self.failed = 0

    @property
    def cache(self) -> MutableMapping[str, str]:
        return self._cache

    def url_for(self, asset: AssetReference) -> str | None:
        """Return the remote URL for ``asset``, uploading it if needed."""

        cached = self._cache.get(asset.checksum)
        if cached:
            self._reporter.detail(f"[image] {asset.path.name} (cached)")
            return cached

        problem = check_uploadable(asset.path)
        if problem is not None:
            self._reporter.warning(f"[image] {asset.path.name}: {problem}")
            self.failed += 1
            return None

        self._reporter.detail(f"[image] {asset.path.name} uploading...")
        try:
            url = self._call(lambda: self._gateway.upload_asset(asset.path))
        except RemoteError as exc:
            self._reporter.error(f"[image] {asset.path.name} failed: {exc}")
            self.failed += 1
            return None

        if not url:
            self._reporter.error(f"[image] {asset.path.name} failed: no URL returned")
            self.failed += 1
            return None

        self._cache[asset.checksum] = url
        self.uploaded += 1
        self._reporter.detail(f"[image] done: {url}")
        return url

    def substitute(self, markup: str) -> tuple[str, int]:
        """Upload images referenced by ``markup`` and rewrite their references.

        Returns the rewritten markup and the number of references that could
        not be uploaded; those references are left untouched.
        """

        replacements: dict[str, str] = {}
        failures = 0
        for asset in find_asset_references(markup, self._root):
            url = self.url_for(asset)
            if url is None:
                failures += 1
                continue
            replacements[asset.reference] = url
        return replace_asset_references(markup, replacements), failures


__all__ = [
    "AssetReference",
    "AssetUploadCache",
    "MAX_ASSET_BYTES",
    "UPLOADABLE_EXTENSIONS",
    "check_uploadable",
    "find_asset_references",
    "is_remote_reference",
    "replace_asset_references",
    "resolve_asset_path",
]
