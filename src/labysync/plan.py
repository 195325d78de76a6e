"""Turn a classified inventory into an ordered set of remote actions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, Mapping

from .classifier import PageInventory, PageStatus
from .content_store import LocalPage


@dataclass(frozen=True)
class Recreation:
    """A page whose recorded id is unknown to the labyrinth and must be re-created."""

    name: str
    stale_remote_id: str


@dataclass(frozen=True)
class SyncPlan:
    """Actions in execution order.

    ``create`` already contains the pages listed in ``recreate``.
    """

    recreate: tuple[Recreation, ...] = ()
    delete_ids: tuple[str, ...] = ()
    remove_states: tuple[str, ...] = ()
    create: tuple[str, ...] = ()
    update: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (
            self.recreate
            or self.delete_ids
            or self.remove_states
            or self.create
            or self.update
        )


@dataclass(frozen=True)
class Link:
    """Answer ``position`` (1-based) on ``source`` leads to ``target``."""

    source: str
    source_id: str
    position: int
    target: str


def is_page_changed(page: LocalPage, entry_page: str | None) -> bool:
    """Return ``True`` when ``page`` differs from what was last synchronised."""

    if page.state is None:
        return True
    if page.fingerprint != page.state.content_hash:
        return True
    return page.state.is_first != (page.name == entry_page)


def build_plan(
    inventory: PageInventory,
    pages: Mapping[str, LocalPage],
    entry_page: str | None = None,
) -> SyncPlan:
    """Derive the actions needed to converge the remote labyrinth."""

    recreate = tuple(
        Recreation(entry.name, entry.remote_id)
        for entry in inventory.of(PageStatus.IDS_MISSING)
        if entry.name is not None and entry.remote_id is not None
    )

    delete_ids: list[str] = []
    remove_states: list[str] = []
    for entry in inventory.entries:
        deletion_id = entry.deletion_id
        if deletion_id is not None and deletion_id not in delete_ids:
            delete_ids.append(deletion_id)
        if entry.removes_state and entry.name is not None:
            remove_states.append(entry.name)

    create = inventory.names(PageStatus.NEW) + [item.name for item in recreate]

    update: list[str] = []
    unchanged: list[str] = []
    for name in inventory.names(PageStatus.NORMAL):
        if is_page_changed(pages[name], entry_page):
            update.append(name)
        else:
            unchanged.append(name)

    skipped = inventory.names(PageStatus.JSON_MISSING) + inventory.names(
        PageStatus.HTML_MISSING
    )

    return SyncPlan(
        recreate=recreate,
        delete_ids=tuple(delete_ids),
        remove_states=tuple(remove_states),
        create=tuple(sorted(create)),
        update=tuple(update),
        unchanged=tuple(unchanged),
        skipped=tuple(sorted(skipped)),
    )


def collect_links(pages: Iterable[LocalPage]) -> dict[str, list[Link]]:
    """Group every answer edge between pages with remote ids by target page."""

    synced = {
        page.name: page
        for page in pages
        if page.eligible and page.remote_id is not None
    }

    edges: dict[str, list[Link]] = {}
    for name in sorted(synced):
        page = synced[name]
        answers = page.metadata.answers if page.metadata is not None else []
        for index, answer in enumerate(answers, start=1):
            if answer.next and answer.next in synced:
                edges.setdefault(answer.next, []).append(
                    Link(
                        source=name,
                        source_id=page.remote_id or "",
                        position=index,
                        target=answer.next,
                    )
                )
    return edges


def select_link_targets(
    edges: Mapping[str, list[Link]],
    *,
    created: Collection[str],
    touched: Collection[str],
    previous_targets: Mapping[str, Collection[str]],
    pending: Collection[str] = (),
) -> list[str]:
    """Choose the target pages whose predecessor links must be rewritten.

    A target is rewritten when it was created this run, when any of its
    incoming edges starts at a page created or updated this run, when a
    touched page used to point at it, or when an earlier run failed to link
    it.
    """

    targets: set[str] = set(pending)
    for target, links in edges.items():
        if target in created or any(link.source in touched for link in links):
            targets.add(target)
    for source in touched:
        targets.update(previous_targets.get(source, ()))
    return sorted(targets)


__all__ = [
    "Link",
    "Recreation",
    "SyncPlan",
    "build_plan",
    "collect_links",
    "is_page_changed",
    "select_link_targets",
]
