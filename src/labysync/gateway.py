"""Interface to the remote labyrinth site used by the reconciler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .models import DEFAULT_BACKGROUND_COLOR, LabyrinthConfig


class RemoteError(RuntimeError):
    """Base exception raised when a remote operation fails."""


class TransientRemoteError(RemoteError):
    """Raised for timeouts, dropped connections and failed navigations."""


class AuthenticationError(RemoteError):
    """Raised when the remote session cannot be established."""


@dataclass(frozen=True)
class AnswerSubmission:
    """Answer fields as they are entered into the page form."""

    text: str
    is_public: bool = False
    explanation: str = ""


@dataclass(frozen=True)
class PageSubmission:
    """Complete page payload submitted on create and on full replace."""

    title: str
    content: str
    background_color: str = DEFAULT_BACKGROUND_COLOR
    is_first: bool = False
    is_ending: bool = False
    hint: str = ""
    answers: tuple[AnswerSubmission, ...] = ()

    @property
    def has_answers(self) -> bool:
        return bool(self.answers)


@dataclass(frozen=True)
class LabyrinthSubmission:
    """Labyrinth settings plus the resolved title image, if any."""

    config: LabyrinthConfig
    title_image: Path | None = None


class RemoteGateway(ABC):
    """Single-session access to the remote site.

    Every method is one blocking round trip. Implementations raise
    :class:`TransientRemoteError` for failures worth retrying and
    :class:`RemoteError` for everything else.
    """

    @abstractmethod
    def login(self) -> None:
        """Open the remote session.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """

    @abstractmethod
    def logout(self) -> None:
        """Close the remote session, releasing any browser resources."""

    @abstractmethod
    def create_labyrinth(self, submission: LabyrinthSubmission) -> str:
        """Create the labyrinth and return its remote identifier."""

    @abstractmethod
    def update_labyrinth(self, labyrinth_id: str, submission: LabyrinthSubmission) -> None:
        """Replace the labyrinth settings."""

    @abstractmethod
    def create_page(self, labyrinth_id: str, page: PageSubmission) -> str | None:
        """Create a page, returning ``None`` when no identifier could be read back."""

    @abstractmethod
    def update_page(self, labyrinth_id: str, page_id: str, page: PageSubmission) -> None:
        """Replace content, metadata and answers of an existing page."""

    @abstractmethod
    def delete_page(self, labyrinth_id: str, page_id: str) -> bool:
        """Delete a page, returning ``False`` when the site does not know it."""

    @abstractmethod
    def set_predecessor_link(
        self, labyrinth_id: str, target_id: str, source_id: str, position: int
    ) -> bool:
        """Record that answer ``position`` of ``source_id`` leads to ``target_id``."""

    @abstractmethod
    def clear_predecessor_links(self, labyrinth_id: str, target_id: str) -> None:
        """Remove every predecessor link stored on ``target_id``."""

    @abstractmethod
    def upload_asset(self, path: Path) -> str | None:
        """Upload an image and return its public URL, or ``None`` on failure."""

    def select_labyrinth(self, labyrinth_id: str) -> None:
        """Remember the labyrinth later uploads belong to."""

    def replace_predecessor_links(
        self,
        labyrinth_id: str,
        target_id: str,
        sources: Sequence[tuple[str, int]],
    ) -> list[tuple[str, int]]:
        """Make ``sources`` the complete predecessor set of ``target_id``.

        ``sources`` holds ``(source_id, position)`` pairs. Returns the pairs
        the site did not accept. The default clears the target and then sets
        each link with a separate call; gateways that can write the whole set
        in one submission override it.
        """

        self.clear_predecessor_links(labyrinth_id, target_id)
        return [
            (source_id, position)
            for source_id, position in sources
            if not self.set_predecessor_link(labyrinth_id, target_id, source_id, position)
        ]


__all__ = [
    "AnswerSubmission",
    "AuthenticationError",
    "LabyrinthSubmission",
    "PageSubmission",
    "RemoteError",
    "RemoteGateway",
    "TransientRemoteError",
]
