"""Tests for the browser gateway's form helpers that need no browser."""

from __future__ import annotations

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from labysync.browser import (
    PlaywrightGateway,
    _remote_errors,
    absolute_url,
    extract_labyrinth_id,
    latest_page_id,
    predecessor_value,
    rating_threshold_form_value,
    tags_to_ids,
)
from labysync.content_store import Credentials
from labysync.gateway import TransientRemoteError

BASE = "https://www.thelabyrinth.co.kr"


def test_tags_map_names_and_keep_numeric_ids() -> None:
    assert tags_to_ids(["story", "퍼즐", 3, "unknown", True]) == [2, 21, 3]
    assert tags_to_ids(["problem", "story", "expert", "search", "event", "movie"]) == [
        1,
        2,
        3,
        5,
        7,
    ]


def test_rating_threshold_form_value() -> None:
    assert rating_threshold_form_value("clear") == "0"
    assert rating_threshold_form_value(0) == "0"
    assert rating_threshold_form_value(5) == "5"


def test_predecessor_value_joins_page_and_answer() -> None:
    assert predecessor_value("1234", 2) == "1234-2"


def test_absolute_url_handles_site_paths() -> None:
    assert (
        absolute_url("/home/labyrinth/tomcat6/webapps/labyrinth/upload/a.png", BASE)
        == f"{BASE}/labyrinth/upload/a.png"
    )
    assert absolute_url("https://cdn.example.com/a.png", BASE) == "https://cdn.example.com/a.png"
    assert absolute_url("//cdn.example.com/a.png", BASE) == "https://cdn.example.com/a.png"
    assert absolute_url("/labyrinth/upload/b.png", BASE + "/") == f"{BASE}/labyrinth/upload/b.png"


def test_extract_labyrinth_id_prefers_url() -> None:
    assert extract_labyrinth_id(f"{BASE}/x.do?labyrinthSeqn=77&mode=edit") == "77"
    assert extract_labyrinth_id(f"{BASE}/x.do", 'var labyrinthSeqn = "81";') == "81"
    assert extract_labyrinth_id(f"{BASE}/x.do") is None


def test_latest_page_id_compares_numerically() -> None:
    handlers = ["fn_click('99')", "fn_click(100)", "location.reload()", 'fn_click("7")']

    assert latest_page_id(handlers) == "100"
    assert latest_page_id([]) is None


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (PlaywrightTimeoutError("30000ms exceeded"), "saving page timed out"),
        (PlaywrightError("Target closed"), "saving page failed"),
    ],
)
def test_playwright_errors_become_transient(error: Exception, expected: str) -> None:
    with pytest.raises(TransientRemoteError, match=expected):
        with _remote_errors("saving page"):
            raise error


def test_other_errors_pass_through() -> None:
    with pytest.raises(KeyError):
        with _remote_errors("saving page"):
            raise KeyError("answers")


class FakeCheckbox:
    def __init__(self, value: str, checked: bool = False) -> None:
        self.value = value
        self.checked = checked

    def get_attribute(self, name: str) -> str | None:
        return self.value if name == "value" else None

    def is_checked(self) -> bool:
        return self.checked

    def check(self) -> None:
        self.checked = True

    def uncheck(self) -> None:
        self.checked = False


class FakeEditPage:
    """Page edit form exposing only its predecessor checkboxes."""

    def __init__(self, *checkboxes: FakeCheckbox) -> None:
        self.checkboxes = {box.value: box for box in checkboxes}

    def query_selector_all(self, selector: str) -> list[FakeCheckbox]:
        return list(self.checkboxes.values())

    def query_selector(self, selector: str) -> FakeCheckbox | None:
        value = selector.split('[value="', 1)[1].rstrip('"]')
        return self.checkboxes.get(value)


@pytest.fixture()
def edit_form(monkeypatch: pytest.MonkeyPatch):
    gateway = PlaywrightGateway(Credentials("author@example.com", "secret"))
    page = FakeEditPage(
        FakeCheckbox("10-1", checked=True),
        FakeCheckbox("11-1"),
        FakeCheckbox("12-2"),
    )
    actions: list[tuple[str, ...]] = []
    gateway._page = page  # type: ignore[assignment]
    monkeypatch.setattr(
        gateway, "_open_edit_page", lambda labyrinth_id, page_id: actions.append(("open", page_id))
    )
    monkeypatch.setattr(gateway, "_submit_page_form", lambda: actions.append(("submit",)))
    return gateway, page, actions


def test_predecessor_links_are_replaced_with_one_submission(edit_form) -> None:
    gateway, page, actions = edit_form

    rejected = gateway.replace_predecessor_links("L1", "20", [("11", 1), ("12", 2), ("13", 1)])

    assert rejected == [("13", 1)]
    assert actions == [("open", "20"), ("submit",)]
    assert {value for value, box in page.checkboxes.items() if box.checked} == {"11-1", "12-2"}


def test_clearing_predecessor_links_unchecks_everything(edit_form) -> None:
    gateway, page, actions = edit_form

    gateway.clear_predecessor_links("L1", "20")

    assert actions == [("open", "20"), ("submit",)]
    assert not any(box.checked for box in page.checkboxes.values())
