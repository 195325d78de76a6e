"""Partition local pages and known remote ids into sync states."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping


class PageStatus(str, Enum):
    """Every state a page name or known remote id can be in."""

    NORMAL = "normal"
    NEW = "new"
    JSON_MISSING = "json_missing"
    HTML_MISSING = "html_missing"
    IDS_MISSING = "ids_missing"
    RESIDUAL_STATE = "residual_state"
    ORPHAN_REMOTE_ID = "orphan_remote_id"


@dataclass(frozen=True)
class PageClassification:
    """One classified entity.

    ``remote_id`` is the recorded id the entry is responsible for, and
    ``tracked`` says whether that id is part of the labyrinth's known page
    ids. Build instances through the named constructors.
    """

    status: PageStatus
    name: str | None = None
    remote_id: str | None = None
    has_state: bool = False
    tracked: bool = False

    @classmethod
    def normal(cls, name: str, remote_id: str) -> "PageClassification":
        return cls(PageStatus.NORMAL, name, remote_id, has_state=True, tracked=True)

    @classmethod
    def new(cls, name: str, *, has_state: bool = False) -> "PageClassification":
        return cls(PageStatus.NEW, name, None, has_state=has_state)

    @classmethod
    def json_missing(
        cls, name: str, remote_id: str | None, *, has_state: bool, tracked: bool
    ) -> "PageClassification":
        return cls(PageStatus.JSON_MISSING, name, remote_id, has_state, tracked)

    @classmethod
    def html_missing(
        cls, name: str, remote_id: str | None, *, has_state: bool, tracked: bool
    ) -> "PageClassification":
        return cls(PageStatus.HTML_MISSING, name, remote_id, has_state, tracked)

    @classmethod
    def ids_missing(cls, name: str, remote_id: str) -> "PageClassification":
        return cls(PageStatus.IDS_MISSING, name, remote_id, has_state=True)

    @classmethod
    def residual_state(
        cls, name: str, remote_id: str | None, *, tracked: bool
    ) -> "PageClassification":
        return cls(PageStatus.RESIDUAL_STATE, name, remote_id, True, tracked)

    @classmethod
    def orphan_remote_id(cls, remote_id: str) -> "PageClassification":
        return cls(PageStatus.ORPHAN_REMOTE_ID, None, remote_id, tracked=True)

    @property
    def deletion_id(self) -> str | None:
        """Return the id the cleanup phase must delete remotely, if any."""

        if self.status is PageStatus.ORPHAN_REMOTE_ID:
            return self.remote_id
        if self.status in _CLEANUP_STATES and self.tracked:
            return self.remote_id
        return None

    @property
    def removes_state(self) -> bool:
        """Return ``True`` when the recorded state file must be deleted."""

        return self.status in _CLEANUP_STATES and self.has_state


_CLEANUP_STATES = frozenset(
    {PageStatus.JSON_MISSING, PageStatus.HTML_MISSING, PageStatus.RESIDUAL_STATE}
)


@dataclass(frozen=True)
class PageInventory:
    """Result of :func:`classify_pages`."""

    entries: tuple[PageClassification, ...]

    def of(self, status: PageStatus) -> tuple[PageClassification, ...]:
        return tuple(entry for entry in self.entries if entry.status is status)

    def names(self, status: PageStatus) -> list[str]:
        return [entry.name for entry in self.of(status) if entry.name is not None]

    def counts(self) -> dict[PageStatus, int]:
        totals = {status: 0 for status in PageStatus}
        for entry in self.entries:
            totals[entry.status] += 1
        return totals


def classify_pages(
    content_names: Iterable[str],
    metadata_names: Iterable[str],
    state_names: Iterable[str],
    known_page_ids: Iterable[str],
    recorded_ids: Mapping[str, str | None],
) -> PageInventory:
    """Classify every page name and every known remote id exactly once.

    Classification is structural: which facets exist and whether the recorded
    id is known. Fingerprints are not consulted. When several recorded states
    claim the same id, the first name in sorted order keeps it and the others
    are handled as if their state carried no id.
    """

    contents = set(content_names)
    metadata = set(metadata_names)
    states = set(state_names)
    known = list(dict.fromkeys(known_page_ids))
    known_set = set(known)

    claims: dict[str, str] = {}
    for name in sorted(states):
        remote_id = recorded_ids.get(name)
        if remote_id and remote_id not in claims:
            claims[remote_id] = name
    owned = {name: remote_id for remote_id, name in claims.items()}

    entries: list[PageClassification] = []
    for name in sorted(contents | metadata | states):
        has_content = name in contents
        has_metadata = name in metadata
        has_state = name in states
        remote_id = owned.get(name)
        tracked = remote_id is not None and remote_id in known_set

        if has_content and has_metadata:
            if remote_id is None:
                entries.append(PageClassification.new(name, has_state=has_state))
            elif tracked:
                entries.append(PageClassification.normal(name, remote_id))
            else:
                entries.append(PageClassification.ids_missing(name, remote_id))
        elif has_content:
            entries.append(
                PageClassification.json_missing(
                    name, remote_id, has_state=has_state, tracked=tracked
                )
            )
        elif has_metadata:
            entries.append(
                PageClassification.html_missing(
                    name, remote_id, has_state=has_state, tracked=tracked
                )
            )
        else:
            entries.append(
                PageClassification.residual_state(name, remote_id, tracked=tracked)
            )

    for remote_id in known:
        if remote_id not in claims:
            entries.append(PageClassification.orphan_remote_id(remote_id))

    return PageInventory(entries=tuple(entries))


__all__ = [
    "PageClassification",
    "PageInventory",
    "PageStatus",
    "classify_pages",
]
