"""Document models for the files that make up a labyrinth content tree."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEADER_DISPLAY_VALUES = ("labyrinth_title", "page_title", "none")
CLEAR_VISIBILITY_VALUES = ("hidden", "count", "list", "full")
TITLE_IMAGE_EXTENSIONS = ("bmp", "jpg", "jpeg", "gif", "png")

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MAX_TAGS = 5
DEFAULT_BACKGROUND_COLOR = "#000000"

# Tag vocabulary accepted by the site, keyed by English symbol and Korean label.
TAG_IDS: dict[str, int] = {
    "problem": 1,
    "story": 2,
    "expert": 3,
    "no-search": 4,
    "search": 5,
    "specific-person": 6,
    "event": 7,
    "parody": 8,
    "movie": 9,
    "tv": 10,
    "comic": 11,
    "singer": 12,
    "actor": 13,
    "nonsense": 14,
    "cute": 15,
    "game": 16,
    "long": 17,
    "short": 18,
    "horror": 19,
    "escape": 20,
    "puzzle": 21,
    "mobile-ok": 22,
    "no-mobile": 23,
    "streaming-ok": 24,
    "문제": 1,
    "스토리": 2,
    "전문지식": 3,
    "검색불필요": 4,
    "검색필요": 5,
    "특정인물": 6,
    "이벤트": 7,
    "패러디": 8,
    "영화": 9,
    "TV프로그램": 10,
    "만화": 11,
    "가수": 12,
    "배우": 13,
    "넌센스": 14,
    "귀염뽀짝": 15,
    "게임": 16,
    "장편미궁": 17,
    "단편미궁": 18,
    "공포": 19,
    "방탈출": 20,
    "퍼즐": 21,
    "모바일가능": 22,
    "모바일불가능": 23,
    "방송송출허용": 24,
}


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _coerce_identifier(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


class LabyrinthConfig(BaseModel):
    """Author-edited labyrinth settings read from ``labyrinth.json``.

    Every field carries the default the site itself applies, so a config
    file only needs to list the values it changes. Keys the model does not
    know about are kept and still contribute to the change fingerprint.
    """

    model_config = ConfigDict(extra="allow")

    title: str = ""
    image: str = ""
    description: str = ""
    tags: list[str | int] = Field(default_factory=list)

    is_event: bool = False
    allow_rating: bool = True
    rating_threshold: int | str = 1
    show_difficulty: bool = True
    show_page_count: bool = False
    show_ending_count: bool = False
    show_badend_count: bool = False
    clear_visibility: str = "full"
    show_answer_rate: bool = False
    block_right_click: bool = False
    login_required: bool = False

    start_page: str = ""
    first_page: str = ""

    @field_validator(
        "title", "image", "description", "start_page", "first_page", mode="before"
    )
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            raise ValueError("tags must be a list of tag names.")
        return value

    @property
    def entry_page(self) -> str | None:
        """Return the page players start on, if the config names one."""

        return self.first_page or self.start_page or None


class Answer(BaseModel):
    """A single choice offered on a page."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: str = Field("", alias="answer")
    next: str | None = None
    is_public: bool = Field(False, alias="public")
    explanation: str = ""

    @field_validator("text", "explanation", mode="before")
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("next", mode="before")
    @classmethod
    def _normalise_next(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        return value


class PageMetadata(BaseModel):
    """Author-edited page metadata read from ``page/<name>.json``."""

    model_config = ConfigDict(extra="allow")

    title: str = ""
    background_color: str | None = None
    header_display: str | None = None
    answers: list[Answer] = Field(default_factory=list)
    is_ending: Any = None
    hint: str = ""

    @field_validator("title", "hint", mode="before")
    @classmethod
    def _normalise_text(cls, value: Any) -> Any:
        return _none_to_empty(value)

    @field_validator("answers", mode="before")
    @classmethod
    def _normalise_answers(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def ending(self) -> bool:
        return bool(self.is_ending)

    def targets(self) -> list[str]:
        """Return the page names referenced by answers, without duplicates."""

        seen: list[str] = []
        for answer in self.answers:
            if answer.next and answer.next not in seen:
                seen.append(answer.next)
        return seen


class PageState(BaseModel):
    """Engine-owned record of a page as it was last synchronised."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    remote_id: str | None = Field(None, alias="id")
    content_hash: str | None = Field(None, alias="hash")
    is_first: bool = False
    is_ending: bool = False
    targets: list[str] = Field(default_factory=list)

    @field_validator("remote_id", mode="before")
    @classmethod
    def _normalise_remote_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class LabyrinthState(BaseModel):
    """Engine-owned record of the remote labyrinth and its known pages."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    remote_id: str | None = Field(None, alias="id")
    config_hash: str | None = Field(None, alias="hash")
    asset_cache: dict[str, str] = Field(default_factory=dict, alias="images")
    known_page_ids: list[str] = Field(default_factory=list, alias="pageIds")
    pending_links: list[str] = Field(default_factory=list, alias="pendingLinks")

    @field_validator("remote_id", mode="before")
    @classmethod
    def _normalise_remote_id(cls, value: Any) -> Any:
        return _coerce_identifier(value)

    @field_validator("known_page_ids", mode="before")
    @classmethod
    def _normalise_page_ids(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, bytes)) or not isinstance(value, list):
            raise ValueError("pageIds must be a list of page identifiers.")
        ordered: list[str] = []
        for entry in value:
            identifier = _coerce_identifier(entry)
            if identifier is not None and identifier not in ordered:
                ordered.append(identifier)
        return ordered

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def add_page_id(self, remote_id: str) -> None:
        if remote_id not in self.known_page_ids:
            self.known_page_ids.append(remote_id)

    def discard_page_id(self, remote_id: str) -> None:
        self.known_page_ids = [
            known for known in self.known_page_ids if known != remote_id
        ]


__all__ = [
    "Answer",
    "CLEAR_VISIBILITY_VALUES",
    "DEFAULT_BACKGROUND_COLOR",
    "DESCRIPTION_MAX_LENGTH",
    "HEADER_DISPLAY_VALUES",
    "LabyrinthConfig",
    "LabyrinthState",
    "MAX_TAGS",
    "PageMetadata",
    "PageState",
    "TAG_IDS",
    "TITLE_IMAGE_EXTENSIONS",
    "TITLE_MAX_LENGTH",
]
