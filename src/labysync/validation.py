"""Structural validation of labyrinth settings and page metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Mapping

from .models import (
    CLEAR_VISIBILITY_VALUES,
    DESCRIPTION_MAX_LENGTH,
    HEADER_DISPLAY_VALUES,
    MAX_TAGS,
    TAG_IDS,
    TITLE_IMAGE_EXTENSIONS,
    TITLE_MAX_LENGTH,
    LabyrinthConfig,
    PageMetadata,
)

_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


@dataclass
class ValidationReport:
    """Errors block a run; warnings are only reported."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationReport") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class ContentValidationError(Exception):
    """Raised when a content tree fails validation; carries every error."""

    def __init__(self, report: ValidationReport) -> None:
        self.report = report
        count = len(report.errors)
        super().__init__(f"{count} validation error{'s' if count != 1 else ''}")


def validate_page(
    name: str, metadata: PageMetadata, eligible_names: Collection[str]
) -> ValidationReport:
    """Validate one page's metadata against the set of eligible page names."""

    report = ValidationReport()

    title = metadata.title
    if not title.strip():
        report.errors.append(f"[{name}] title is required.")
    elif len(title) > TITLE_MAX_LENGTH:
        report.errors.append(f"[{name}] title exceeds {TITLE_MAX_LENGTH} characters.")

    color = metadata.background_color
    if color and not _COLOR_PATTERN.match(color):
        report.errors.append(
            f"[{name}] Invalid background_color format: {color} (expected: #000000)"
        )

    header = metadata.header_display
    if header and header not in HEADER_DISPLAY_VALUES:
        report.warnings.append(
            f"[{name}] Invalid header_display value: {header} "
            f"(allowed: {', '.join(HEADER_DISPLAY_VALUES)})"
        )

    for index, answer in enumerate(metadata.answers):
        if not answer.text.strip():
            report.errors.append(f"[{name}] answers[{index}].answer is required.")
        if answer.next and answer.next not in eligible_names:
            report.errors.append(
                f'[{name}] answers[{index}].next references non-existent page: "{answer.next}"'
            )

    if metadata.is_ending is not None and not isinstance(metadata.is_ending, bool):
        report.warnings.append(f"[{name}] is_ending should be boolean.")

    return report


def validate_pages(pages: Mapping[str, PageMetadata]) -> ValidationReport:
    """Validate every eligible page; references resolve against all of them."""

    report = ValidationReport()
    eligible = set(pages)
    for name in sorted(pages):
        report.extend(validate_page(name, pages[name], eligible))
    return report


def validate_labyrinth_config(
    config: LabyrinthConfig, *, title_image: Path | None = None
) -> ValidationReport:
    """Validate labyrinth settings before anything is sent to the site."""

    report = ValidationReport()

    if not config.title.strip():
        report.errors.append("title is required in labyrinth.json.")
    elif len(config.title) > TITLE_MAX_LENGTH:
        report.errors.append(f"title exceeds {TITLE_MAX_LENGTH} characters.")

    if len(config.description) > DESCRIPTION_MAX_LENGTH:
        report.errors.append(
            f"description exceeds {DESCRIPTION_MAX_LENGTH} characters "
            f"(current: {len(config.description)})."
        )

    if len(config.tags) > MAX_TAGS:
        report.errors.append(f"At most {MAX_TAGS} tags are allowed.")
    unknown = [tag for tag in config.tags if isinstance(tag, str) and tag not in TAG_IDS]
    if unknown:
        report.errors.append(f"Unknown tags: {', '.join(unknown)}")
    valid_ids = set(TAG_IDS.values())
    bad_ids = [str(tag) for tag in config.tags if isinstance(tag, int) and tag not in valid_ids]
    if bad_ids:
        report.errors.append(f"Unknown tag ids: {', '.join(bad_ids)}")

    if config.image:
        extension = config.image.rsplit(".", 1)[-1].lower() if "." in config.image else ""
        if extension not in TITLE_IMAGE_EXTENSIONS:
            report.errors.append(
                f"Invalid title image format (allowed: {', '.join(TITLE_IMAGE_EXTENSIONS)})."
            )
        elif title_image is not None and not title_image.is_file():
            report.errors.append(f"Title image not found: {config.image}")

    if config.clear_visibility not in CLEAR_VISIBILITY_VALUES:
        report.errors.append(
            f"Invalid clear_visibility value: {config.clear_visibility} "
            f"(allowed: {', '.join(CLEAR_VISIBILITY_VALUES)})"
        )

    threshold = config.rating_threshold
    if isinstance(threshold, str):
        if threshold != "clear":
            report.errors.append(
                f"Invalid rating_threshold value: {threshold} (expected 'clear' or a number)"
            )
    elif threshold < 0:
        report.errors.append("rating_threshold must not be negative.")

    return report


def validate_entry_page(
    config: LabyrinthConfig, eligible_names: Collection[str]
) -> ValidationReport:
    """Check that the configured first page resolves to an eligible page."""

    report = ValidationReport()
    entry = config.entry_page
    if entry and entry not in eligible_names:
        report.errors.append(
            f'first_page/start_page references non-existent page: "{entry}" '
            f"(available: {', '.join(sorted(eligible_names)) or 'none'})"
        )
    return report


__all__ = [
    "ContentValidationError",
    "ValidationReport",
    "validate_entry_page",
    "validate_labyrinth_config",
    "validate_page",
    "validate_pages",
]
