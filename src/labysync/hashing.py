"""Deterministic fingerprints used to detect local changes between runs."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable, Mapping


def canonical_json(value: Any) -> str:
    """Serialise ``value`` so equal documents always produce equal text."""

    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _digest(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def file_checksum(path: Path) -> str:
    """Return the MD5 checksum of the bytes stored at ``path``."""

    digest = hashlib.md5()
    with Path(path).open("rb") as stream:
        for chunk in iter(lambda: stream.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def page_fingerprint(
    content: str,
    metadata: Mapping[str, Any],
    asset_checksums: Iterable[str] = (),
) -> str:
    """Fingerprint a page from its markup, metadata and referenced assets.

    The metadata mapping is hashed by value, so reordering its keys has no
    effect; the asset checksums are de-duplicated and sorted for the same
    reason.
    """

    payload = {
        "content": content,
        "metadata": metadata,
        "assets": sorted(set(asset_checksums)),
    }
    return _digest(canonical_json(payload))


def labyrinth_fingerprint(
    config: Mapping[str, Any], title_asset_checksum: str | None = None
) -> str:
    """Fingerprint the labyrinth settings together with its title image."""

    payload = {"config": config, "title_image": title_asset_checksum}
    return _digest(canonical_json(payload))


__all__ = [
    "canonical_json",
    "file_checksum",
    "labyrinth_fingerprint",
    "page_fingerprint",
]
