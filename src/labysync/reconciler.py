"""Converge the remote labyrinth to the local content tree.

A run is split into :meth:`Reconciler.prepare`, which only touches local
files (load, classify, validate, plan), and :meth:`Reconciler.run`, which
executes the plan phase by phase:

1. create or update the labyrinth itself,
2. delete pages whose recorded id the labyrinth no longer lists,
3. delete orphaned ids and clean up state of incomplete pages,
4. create new pages,
5. update changed pages,
6. rewrite predecessor links of affected target pages.

Recorded state is written after every remote operation, so an interrupted
run loses at most the operation in flight and the next run resumes from
there.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Callable

from .assets import AssetUploadCache
from .classifier import PageInventory, PageStatus, classify_pages
from .content_store import ContentStore, LocalPage
from .gateway import (
    AnswerSubmission,
    LabyrinthSubmission,
    PageSubmission,
    RemoteError,
    RemoteGateway,
)
from .models import DEFAULT_BACKGROUND_COLOR, LabyrinthConfig, LabyrinthState, PageState
from .plan import Link, SyncPlan, build_plan, collect_links, select_link_targets
from .reporting import NullReporter, SyncReporter
from .retry import RETRYABLE_ERRORS, RetryingCaller, RetryPolicy, SettleDelay
from .validation import (
    ContentValidationError,
    ValidationReport,
    validate_entry_page,
    validate_labyrinth_config,
    validate_pages,
)

FAILURE_CATEGORIES = ("delete", "create", "update", "link", "asset")


class FatalSyncError(RuntimeError):
    """Raised when the run cannot continue, e.g. the labyrinth itself failed."""


@dataclass
class SyncSummary:
    """Counters describing what a run did and what failed."""

    labyrinth_id: str | None = None
    labyrinth_action: str = "unchanged"
    deleted: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    linked: int = 0
    assets_uploaded: int = 0
    states_removed: int = 0
    failures: dict[str, int] = field(default_factory=dict)

    def record_failure(self, category: str, count: int = 1) -> None:
        if category not in FAILURE_CATEGORIES:
            raise ValueError(f"Unknown failure category: {category}")
        self.failures[category] = self.failures.get(category, 0) + count

    @property
    def total_failures(self) -> int:
        return sum(self.failures.values())

    @property
    def has_failures(self) -> bool:
        return self.total_failures > 0

    def describe(self) -> list[str]:
        """Return human-readable summary lines."""

        lines = [
            f"Labyrinth ID: {self.labyrinth_id} ({self.labyrinth_action})",
            (
                f"Pages: {self.created} created, {self.updated} updated, "
                f"{self.unchanged} unchanged, {self.deleted} deleted"
            ),
            f"Links: {self.linked} target pages linked",
            f"Images uploaded: {self.assets_uploaded}",
        ]
        if self.states_removed:
            lines.append(f"Stale state files removed: {self.states_removed}")
        if self.has_failures:
            details = ", ".join(
                f"{category}: {self.failures[category]}"
                for category in FAILURE_CATEGORIES
                if self.failures.get(category)
            )
            lines.append(f"Failures: {details}")
            lines.append("Failed items will be retried automatically on the next run.")
        return lines


@dataclass
class PreparedSync:
    """Local view of a content tree, ready to be executed."""

    config: LabyrinthConfig
    config_hash: str
    state: LabyrinthState | None
    pages: dict[str, LocalPage]
    inventory: PageInventory
    plan: SyncPlan
    report: ValidationReport

    def raise_for_errors(self) -> None:
        if not self.report.valid:
            raise ContentValidationError(self.report)


class Reconciler:
    """Synchronise one content tree through a :class:`RemoteGateway`."""

    def __init__(
        self,
        store: ContentStore,
        gateway: RemoteGateway,
        *,
        reporter: SyncReporter | None = None,
        retry_policy: RetryPolicy | None = None,
        retryable: tuple[type[Exception], ...] = RETRYABLE_ERRORS,
        settle_delay: float = 0.1,
        sleep: Callable[[float], None] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.reporter = reporter or NullReporter()
        self._retry_policy = retry_policy or RetryPolicy()
        self.call = RetryingCaller(
            retry_policy=self._retry_policy,
            retryable=retryable,
            sleep=sleep,
            on_retry=self._report_retry,
        )
        self.settle = SettleDelay(settle_delay, clock=clock, sleep=sleep)

    def prepare(self) -> PreparedSync:
        """Load, classify, validate and plan without contacting the site."""

        return prepare_sync(self.store, reporter=self.reporter)

    def run(self, prepared: PreparedSync | None = None) -> SyncSummary:
        """Execute every phase and return the run summary.

        Raises:
            ContentValidationError: Before any remote call, if validation failed.
            FatalSyncError: If the labyrinth could not be created or updated.
        """

        if prepared is None:
            prepared = self.prepare()
        prepared.raise_for_errors()
        return _SyncRun(self, prepared).execute()

    def _report_retry(self, attempt: int, error: Exception, delay: float) -> None:
        self.reporter.warning(
            f"Transient failure ({error}); retrying in {delay:.1f}s "
            f"(attempt {attempt + 1} of {self._retry_policy.max_attempts})"
        )


def prepare_sync(store: ContentStore, *, reporter: SyncReporter | None = None) -> PreparedSync:
    """Load, classify, validate and plan a content tree.

    Only local files are read. Validation errors are collected in the
    returned report rather than raised; warnings and classification problems
    are passed to ``reporter``.
    """

    config = store.load_config()
    report = validate_labyrinth_config(config, title_image=store.title_image_path(config))

    state = store.load_state()
    synced = state is not None and state.remote_id is not None
    pages = store.load_pages(include_state=synced)

    inventory = classify_pages(
        [name for name, page in pages.items() if page.content is not None],
        [name for name, page in pages.items() if page.metadata is not None],
        [name for name, page in pages.items() if page.state is not None],
        state.known_page_ids if state is not None and synced else [],
        {name: page.remote_id for name, page in pages.items()},
    )

    eligible = {
        name: page.metadata
        for name, page in pages.items()
        if page.eligible and page.metadata is not None
    }
    report.extend(validate_pages(eligible))
    report.extend(validate_entry_page(config, eligible))

    prepared = PreparedSync(
        config=config,
        config_hash=store.config_fingerprint(config),
        state=state,
        pages=pages,
        inventory=inventory,
        plan=build_plan(inventory, pages, config.entry_page),
        report=report,
    )
    _report_prepared(prepared, reporter or NullReporter())
    return prepared


def _report_prepared(prepared: PreparedSync, reporter: SyncReporter) -> None:
    pages = prepared.pages
    state = prepared.state
    known = state.known_page_ids if state is not None and state.remote_id else []

    reporter.section("Pages")
    reporter.info(
        f"HTML: {sum(1 for page in pages.values() if page.content is not None)}, "
        f"JSON: {sum(1 for page in pages.values() if page.metadata is not None)}, "
        f"Meta: {sum(1 for page in pages.values() if page.state is not None)}, "
        f"Known IDs: {len(known)}"
    )

    for entry in prepared.inventory.entries:
        if entry.status is PageStatus.JSON_MISSING:
            reporter.warning(f"[{entry.name}] HTML exists but JSON missing - skipped")
        elif entry.status is PageStatus.HTML_MISSING:
            reporter.warning(f"[{entry.name}] JSON exists but HTML missing - skipped")
        elif entry.status is PageStatus.IDS_MISSING:
            reporter.warning(
                f"[{entry.name}] Missing from pageIds (ID: {entry.remote_id}) "
                "- will delete and recreate"
            )
        elif entry.status is PageStatus.RESIDUAL_STATE:
            reporter.warning(
                f"[{entry.name}] Residual meta (ID: {entry.remote_id}) - will clean up"
            )
        elif entry.status is PageStatus.ORPHAN_REMOTE_ID:
            reporter.warning(f"Orphan page ID {entry.remote_id} - will delete from site")

    for warning in prepared.report.warnings:
        reporter.warning(warning)

    plan = prepared.plan
    reporter.info(
        f"New: {len(plan.create)}, Modified: {len(plan.update)}, "
        f"Unchanged: {len(plan.unchanged)}, To delete: "
        f"{len(plan.delete_ids) + len(plan.recreate)}"
    )


class _SyncRun:
    """State of a single execution of a prepared plan."""

    def __init__(self, reconciler: Reconciler, prepared: PreparedSync) -> None:
        self._store = reconciler.store
        self._gateway = reconciler.gateway
        self._reporter = reconciler.reporter
        self._call = reconciler.call
        self._settle = reconciler.settle

        self._prepared = prepared
        self._config = prepared.config
        self._plan = prepared.plan
        self._pages = prepared.pages
        self._entry_page = prepared.config.entry_page
        self._state = (
            prepared.state.model_copy(deep=True)
            if prepared.state is not None
            else LabyrinthState()
        )
        self._previous_targets = {
            name: list(page.state.targets)
            for name, page in prepared.pages.items()
            if page.state is not None
        }
        self._created: set[str] = set()
        self._updated: set[str] = set()
        self._summary = SyncSummary(unchanged=len(prepared.plan.unchanged))
        self._assets: AssetUploadCache | None = None

    def execute(self) -> SyncSummary:
        self._sync_labyrinth()
        self._assets = AssetUploadCache(
            self._gateway,
            self._store.root,
            self._state.asset_cache,
            caller=self._call,
            reporter=self._reporter,
        )
        self._delete_for_recreation()
        self._clean_up()
        self._create_pages()
        self._update_pages()
        self._link_pages()

        self._summary.assets_uploaded = self._assets.uploaded
        if self._assets.failed:
            self._summary.record_failure("asset", self._assets.failed)

        self._reporter.section("Summary")
        for line in self._summary.describe():
            self._reporter.info(line)
        return self._summary

    @property
    def _labyrinth_id(self) -> str:
        remote_id = self._state.remote_id
        if remote_id is None:
            raise FatalSyncError("Labyrinth has no remote id")
        return remote_id

    def _save_state(self) -> None:
        self._store.save_state(self._state)

    # Phase 1 ------------------------------------------------------------

    def _sync_labyrinth(self) -> None:
        config = self._config
        config_hash = self._prepared.config_hash
        submission = LabyrinthSubmission(
            config=config, title_image=self._store.title_image_path(config)
        )

        self._reporter.section("Labyrinth")
        if self._state.remote_id is None:
            self._reporter.info(f"Creating labyrinth: {config.title}")
            try:
                remote_id = self._call(
                    partial(self._gateway.create_labyrinth, submission)
                )
            except RemoteError as exc:
                raise FatalSyncError(f"Labyrinth creation failed: {exc}") from exc
            if not remote_id:
                raise FatalSyncError("Labyrinth creation did not return an id")

            removed = sum(
                1 for name in self._store.state_names() if self._store.delete_page_state(name)
            )
            if removed:
                self._reporter.info(f"Cleaned up {removed} old page meta files")

            self._state = LabyrinthState(remote_id=remote_id, config_hash=config_hash)
            self._save_state()
            self._summary.labyrinth_action = "created"
            self._reporter.info(f"Labyrinth created! ID: {remote_id}")
        elif self._state.config_hash != config_hash:
            self._reporter.info("Updating labyrinth info...")
            try:
                self._call(
                    partial(self._gateway.update_labyrinth, self._labyrinth_id, submission)
                )
            except RemoteError as exc:
                raise FatalSyncError(f"Labyrinth update failed: {exc}") from exc

            self._state.config_hash = config_hash
            self._save_state()
            self._summary.labyrinth_action = "updated"
            self._reporter.info("Labyrinth info updated")
        else:
            self._reporter.info("Labyrinth info unchanged")

        self._summary.labyrinth_id = self._state.remote_id
        self._gateway.select_labyrinth(self._labyrinth_id)

    # Phases 2 and 3 -----------------------------------------------------

    def _delete_remote(self, remote_id: str) -> bool | None:
        """Delete one page; ``None`` means the call failed and nothing is known."""

        self._settle.wait()
        self._reporter.info(f"- ID {remote_id} deleting...")
        try:
            deleted = self._call(
                partial(self._gateway.delete_page, self._labyrinth_id, remote_id)
            )
        except RemoteError as exc:
            self._summary.record_failure("delete")
            self._reporter.error(f"Deleting page {remote_id} failed: {exc}")
            return None

        self._summary.deleted += 1
        self._reporter.detail("deleted" if deleted else "not found (already deleted)")
        return bool(deleted)

    def _delete_for_recreation(self) -> None:
        recreate = self._plan.recreate
        if not recreate:
            return

        self._reporter.section(f"Deleting pages for recreation ({len(recreate)})")
        for item in recreate:
            if self._delete_remote(item.stale_remote_id) is None:
                # Keep the id listed so a later run deletes it as an orphan.
                self._state.add_page_id(item.stale_remote_id)
            else:
                self._state.discard_page_id(item.stale_remote_id)
            self._store.delete_page_state(item.name)
            self._pages[item.name].state = None
        self._save_state()

    def _clean_up(self) -> None:
        delete_ids = self._plan.delete_ids
        if delete_ids:
            self._reporter.section(f"Deleting orphan pages ({len(delete_ids)})")
            for remote_id in delete_ids:
                if self._delete_remote(remote_id) is not None:
                    self._state.discard_page_id(remote_id)
            self._save_state()

        remove_states = self._plan.remove_states
        if remove_states:
            self._reporter.section(f"Cleaning up meta files ({len(remove_states)})")
            for name in remove_states:
                if self._store.delete_page_state(name):
                    self._summary.states_removed += 1
                    self._reporter.detail(f"- {name}.meta deleted")
                page = self._pages.get(name)
                if page is not None:
                    page.state = None

    # Phases 4 and 5 -----------------------------------------------------

    def _build_submission(self, page: LocalPage) -> PageSubmission | None:
        metadata = page.metadata
        if metadata is None or page.content is None or self._assets is None:
            return None

        content, failures = self._assets.substitute(page.content)
        answers: list[AnswerSubmission] = []
        for answer in metadata.answers:
            explanation, missing = self._assets.substitute(answer.explanation)
            failures += missing
            answers.append(
                AnswerSubmission(
                    text=answer.text,
                    is_public=answer.is_public,
                    explanation=explanation,
                )
            )
        self._save_state()

        if failures:
            self._reporter.error(
                f"[{page.name}] {failures} image(s) could not be uploaded - skipped"
            )
            return None

        return PageSubmission(
            title=metadata.title,
            content=content,
            background_color=metadata.background_color or DEFAULT_BACKGROUND_COLOR,
            is_first=page.name == self._entry_page,
            is_ending=metadata.ending,
            hint=metadata.hint,
            answers=tuple(answers),
        )

    def _record_page(self, page: LocalPage, remote_id: str) -> None:
        metadata = page.metadata
        state = PageState(
            remote_id=remote_id,
            content_hash=page.fingerprint,
            is_first=page.name == self._entry_page,
            is_ending=metadata.ending if metadata is not None else False,
            targets=metadata.targets() if metadata is not None else [],
        )
        self._store.write_page_state(page.name, state)
        page.state = state

    def _create_pages(self) -> None:
        names = self._plan.create
        if not names:
            return

        self._reporter.section(f"Creating new pages ({len(names)})")
        for name in names:
            page = self._pages[name]
            title = page.metadata.title if page.metadata is not None else name
            self._reporter.info(f"- {name}: {title}")

            submission = self._build_submission(page)
            if submission is None:
                self._summary.record_failure("create")
                continue

            try:
                remote_id = self._call(
                    partial(self._gateway.create_page, self._labyrinth_id, submission)
                )
            except RemoteError as exc:
                self._summary.record_failure("create")
                self._reporter.error(f"[{name}] creation failed: {exc}")
                continue
            if not remote_id:
                self._summary.record_failure("create")
                self._reporter.error(f"[{name}] creation failed: could not get page ID")
                continue

            self._record_page(page, remote_id)
            self._state.add_page_id(remote_id)
            self._save_state()
            self._created.add(name)
            self._summary.created += 1
            self._reporter.detail(f"created: ID {remote_id}")

    def _update_pages(self) -> None:
        names = self._plan.update
        if not names:
            return

        self._reporter.section(f"Updating modified pages ({len(names)})")
        for name in names:
            page = self._pages[name]
            remote_id = page.remote_id
            if remote_id is None:
                continue
            title = page.metadata.title if page.metadata is not None else name
            self._reporter.info(f"- {name}: {title}")

            submission = self._build_submission(page)
            if submission is None:
                self._summary.record_failure("update")
                continue

            try:
                self._call(
                    partial(
                        self._gateway.update_page,
                        self._labyrinth_id,
                        remote_id,
                        submission,
                    )
                )
            except RemoteError as exc:
                self._summary.record_failure("update")
                self._reporter.error(f"[{name}] update failed: {exc}")
                continue

            self._record_page(page, remote_id)
            self._updated.add(name)
            self._summary.updated += 1
            self._reporter.detail("updated")

    # Phase 6 ------------------------------------------------------------

    def _link_pages(self) -> None:
        edges = collect_links(self._pages.values())
        synced = {
            name
            for name, page in self._pages.items()
            if page.eligible and page.remote_id is not None
        }
        targets = [
            target
            for target in select_link_targets(
                edges,
                created=self._created,
                touched=self._created | self._updated,
                previous_targets=self._previous_targets,
                pending=self._state.pending_links,
            )
            if target in synced
        ]

        failed: list[str] = []
        if targets:
            self._reporter.section(f"Setting page connections ({len(targets)} targets)")
        for target in targets:
            if self._apply_links(target, edges.get(target, [])):
                self._summary.linked += 1
            else:
                self._summary.record_failure("link")
                failed.append(target)

        if targets or self._state.pending_links != failed:
            self._state.pending_links = failed
            self._save_state()

    def _apply_links(self, target: str, links: list[Link]) -> bool:
        target_id = self._pages[target].remote_id
        if target_id is None:
            return False

        self._settle.wait()
        self._reporter.info(f"- {target} (ID: {target_id})")
        try:
            rejected = self._call(
                partial(
                    self._gateway.replace_predecessor_links,
                    self._labyrinth_id,
                    target_id,
                    [(link.source_id, link.position) for link in links],
                )
            )
        except RemoteError as exc:
            self._reporter.error(f"[{target}] connection failed: {exc}")
            return False

        for link in links:
            if (link.source_id, link.position) in rejected:
                self._reporter.warning(
                    f"[{target}] <- {link.source} [answer {link.position}] failed"
                )
            else:
                self._reporter.detail(f"<- {link.source} [answer {link.position}]")
        return not rejected


__all__ = [
    "FAILURE_CATEGORIES",
    "FatalSyncError",
    "PreparedSync",
    "Reconciler",
    "SyncSummary",
    "prepare_sync",
]
