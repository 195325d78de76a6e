"""Browser-driven :class:`RemoteGateway` for thelabyrinth.co.kr.

The site has no API; every operation fills and submits the same forms an
author would use. Playwright's synchronous API drives a Chromium instance
for the duration of one login session.
"""

from __future__ import annotations

import contextlib
import mimetypes
import re
import secrets
from pathlib import Path
from typing import Iterator, Sequence
from urllib.parse import urlencode, urljoin

from playwright.sync_api import Browser, BrowserContext, ElementHandle, Page, Playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .content_store import Credentials
from .gateway import (
    AnswerSubmission,
    AuthenticationError,
    LabyrinthSubmission,
    PageSubmission,
    RemoteError,
    RemoteGateway,
    TransientRemoteError,
)
from .models import MAX_TAGS, TAG_IDS, TITLE_IMAGE_EXTENSIONS
from .settings import SyncSettings

LOGIN_PATH = "/labyrinth/user/login.do"
REGISTER_LABYRINTH_PATH = "/labyrinth/laby/making/registLabyrinth.do"
CREATE_PAGE_PATH = "/labyrinth/laby/quest/registQuestion.do"
PAGE_LIST_PATH = "/labyrinth/laby/quest/questionList.do"

# Upload responses sometimes carry the server's filesystem path.
SERVER_UPLOAD_ROOT = "/home/labyrinth/tomcat6/webapps/labyrinth"
TITLE_IMAGE_MAX_BYTES = 5 * 1024 * 1024

CLEAR_VISIBILITY_FORM_VALUES = {"hidden": "0", "count": "1", "list": "2", "full": "3"}
CHECKBOX_FIELDS = {
    "show_difficulty": 'input[name="levelYsno"]',
    "show_page_count": 'input[name="questCntOpen"]',
    "show_ending_count": 'input[name="endCntOpen"]',
    "show_badend_count": 'input[name="badendCntOpen"]',
    "show_answer_rate": 'input[name="answerPerOpen"]',
    "login_required": 'input[name="onlyLoginFlg"]',
    "block_right_click": 'input[name="pageBlockFlg"]',
    "allow_rating": 'input[name="evalYsno"]',
    "is_event": 'input[name="eventYsno"]',
}
PRESET_BACKGROUND_COLORS = (
    "#FFFFFF",
    "#000000",
    "#FF0000",
    "#FF5E00",
    "#FFE400",
    "#ABF200",
    "#0054FF",
    "#5F00FF",
)

_EDITOR_READY_JS = """() => typeof oEditors !== 'undefined'
    && oEditors.getById
    && oEditors.getById['quest']
    && typeof oEditors.getById['quest'].setIR === 'function'"""

_SET_EDITOR_CONTENT_JS = """(content) => {
    const editor = oEditors.getById['quest'];
    editor.setIR(content);
    editor.exec('UPDATE_CONTENTS_FIELD', []);
}"""

_SYNC_EDITOR_JS = """() => {
    if (typeof oEditors !== 'undefined' && oEditors.getById) {
        const editor = oEditors.getById['quest'];
        if (editor && editor.exec) {
            editor.exec('UPDATE_CONTENTS_FIELD', []);
        }
    }
}"""

_CURRENT_PAGE_ID_JS = """() => new URLSearchParams(window.location.search).get('questSeqn')
    || document.querySelector('input[name="questSeqn"]')?.value
    || null"""

_LINKED_PAGE_IDS_JS = """() => Array.from(document.querySelectorAll('a'))
    .map(link => link.getAttribute('onclick') || '')"""

_VISIBLE_ANSWER_INPUTS_JS = """() => Array.from(document.querySelectorAll('input.answer'))
    .map((el, index) => {
        const row = el.closest('tr');
        return {
            index,
            visible: Boolean(row) && row.style.display !== 'none',
            empty: !el.value || el.value.trim() === '',
        };
    })"""

_UPLOADED_IMAGE_JS = """() => {
    for (const iframe of document.querySelectorAll('iframe')) {
        try {
            const doc = iframe.contentDocument || iframe.contentWindow?.document;
            if (!doc || !doc.body) {
                continue;
            }
            const img = doc.body.innerHTML.match(/<img[^>]+src="([^"]+)"/i);
            if (img) {
                return img[1];
            }
            const path = doc.body.innerHTML.match(/filePath\\s*=\\s*["']([^"']+)["']/);
            if (path) {
                return path[1];
            }
        } catch (e) {
            continue;
        }
    }
    return null;
}"""

_LABYRINTH_ID_PATTERN = re.compile(r"labyrinthSeqn=(\d+)")
_LABYRINTH_ID_CONTENT_PATTERN = re.compile(r"labyrinthSeqn[\"\s:=]+[\"']?(\d+)", re.IGNORECASE)
_FN_CLICK_PATTERN = re.compile(r"fn_click\(['\"]?(\d+)['\"]?\)")
_QUEST_SEQN_PATTERN = re.compile(r"questSeqn=(\d+)")


def tags_to_ids(tags: Sequence[str | int]) -> list[int]:
    """Return the site's tag ids for ``tags``; unknown names are dropped."""

    ids: list[int] = []
    for tag in tags:
        if isinstance(tag, bool):
            continue
        if isinstance(tag, int):
            ids.append(tag)
        elif tag in TAG_IDS:
            ids.append(TAG_IDS[tag])
    return ids[:MAX_TAGS]


def rating_threshold_form_value(value: int | str) -> str:
    """Return the ``evalStandardCnt`` option; ``"0"`` means after a clear."""

    if value == "clear" or value == 0:
        return "0"
    return str(value)


def predecessor_value(source_id: str, position: int) -> str:
    """Return the ``prevQuestCheckList`` value linking answer ``position`` of ``source_id``."""

    return f"{source_id}-{position}"


def absolute_url(url: str, base_url: str) -> str:
    """Resolve a URL returned by the site against ``base_url``."""

    if url.startswith(SERVER_UPLOAD_ROOT):
        url = "/labyrinth" + url[len(SERVER_UPLOAD_ROOT):]
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    return urljoin(base_url.rstrip("/") + "/", url)


def extract_labyrinth_id(url: str, html: str = "") -> str | None:
    """Find the labyrinth id in a post-submit URL, falling back to the markup."""

    match = _LABYRINTH_ID_PATTERN.search(url)
    if match is None and html:
        match = _LABYRINTH_ID_CONTENT_PATTERN.search(html)
    return match.group(1) if match else None


def latest_page_id(onclick_values: Sequence[str]) -> str | None:
    """Return the highest page id referenced by page list ``fn_click`` handlers."""

    ids = [
        match.group(1)
        for match in (_FN_CLICK_PATTERN.search(value) for value in onclick_values)
        if match is not None
    ]
    return max(ids, key=int) if ids else None


@contextlib.contextmanager
def _remote_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise TransientRemoteError(f"{action} timed out: {exc}") from exc
    except PlaywrightError as exc:
        raise TransientRemoteError(f"{action} failed: {exc}") from exc


class PlaywrightGateway(RemoteGateway):
    """Drive the site's authoring forms in a Chromium browser."""

    def __init__(self, credentials: Credentials, settings: SyncSettings | None = None) -> None:
        self._credentials = credentials
        self._settings = settings or SyncSettings()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._labyrinth_id: str | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RemoteError("Browser session is not open; call login() first")
        return self._page

    def _url(self, path: str, **params: str) -> str:
        url = f"{self._settings.base_url}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return url

    # Session ------------------------------------------------------------

    def login(self) -> None:
        if not self._credentials.email or not self._credentials.password:
            raise AuthenticationError("Email and password are required")

        self.logout()
        self._playwright = sync_playwright().start()
        try:
            with _remote_errors("login"):
                self._browser = self._playwright.chromium.launch(
                    headless=self._settings.headless,
                    args=["--no-sandbox", "--disable-setuid-sandbox"],
                )
                self._context = self._browser.new_context()
                self._context.set_default_timeout(self._settings.timeout_ms)
                self._page = self._context.new_page()

                page = self._page
                page.goto(self._url(LOGIN_PATH), wait_until="networkidle")
                page.fill("#email", self._credentials.email)
                page.fill("#password", self._credentials.password)
                with page.expect_navigation(wait_until="networkidle"):
                    page.click("#loginBtn")

                if "login.do" in page.url:
                    alert = page.query_selector(".alert-message, .error-message")
                    reason = alert.text_content() if alert is not None else None
                    raise AuthenticationError(
                        f"Login failed: {(reason or 'unknown reason').strip()}"
                    )
        except RemoteError:
            self.logout()
            raise

    def logout(self) -> None:
        # Closing an already-dead browser raises.
        with contextlib.suppress(PlaywrightError):
            if self._context is not None:
                self._context.close()
        with contextlib.suppress(PlaywrightError):
            if self._browser is not None:
                self._browser.close()
        with contextlib.suppress(PlaywrightError):
            if self._playwright is not None:
                self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    def select_labyrinth(self, labyrinth_id: str) -> None:
        self._labyrinth_id = labyrinth_id

    # Labyrinth ----------------------------------------------------------

    def create_labyrinth(self, submission: LabyrinthSubmission) -> str:
        if not submission.config.title:
            raise RemoteError("A labyrinth title is required")

        page = self.page
        with _remote_errors("create labyrinth"):
            page.goto(self._url(REGISTER_LABYRINTH_PATH), wait_until="networkidle")
            self._fill_labyrinth_form(submission)
            page.click("#createLabyrinth")
            page.wait_for_selector("#labyPopupOk", state="visible", timeout=5000)
            with page.expect_navigation(wait_until="networkidle"):
                page.click("#labyPopupOk")

            labyrinth_id = extract_labyrinth_id(page.url)
            if labyrinth_id is None:
                field = page.query_selector('#labyrinthSeqn, input[name="labyrinthSeqn"]')
                value = field.input_value() if field is not None else ""
                labyrinth_id = value or extract_labyrinth_id("", page.content())

        if not labyrinth_id:
            raise RemoteError("Could not read the labyrinth id after creation")
        self._labyrinth_id = labyrinth_id
        return labyrinth_id

    def update_labyrinth(self, labyrinth_id: str, submission: LabyrinthSubmission) -> None:
        page = self.page
        with _remote_errors("update labyrinth"):
            page.goto(
                self._url(REGISTER_LABYRINTH_PATH, labyrinthSeqn=labyrinth_id),
                wait_until="networkidle",
            )
            self._fill_labyrinth_form(submission)
            page.click("#modifyLabyrinth")
            page.wait_for_selector("#labyPopupOk", state="visible", timeout=5000)
            with page.expect_navigation(wait_until="networkidle"):
                page.click("#labyPopupOk")
        self._labyrinth_id = labyrinth_id

    def _fill_labyrinth_form(self, submission: LabyrinthSubmission) -> None:
        page = self.page
        config = submission.config

        page.fill("#labyrinthNm", config.title)
        page.fill("#labyrinthDc", config.description)

        for key, selector in CHECKBOX_FIELDS.items():
            if page.query_selector(selector) is not None:
                page.set_checked(selector, bool(getattr(config, key)))

        radio = (
            'input[name="questClearOpenType"]'
            f'[value="{CLEAR_VISIBILITY_FORM_VALUES.get(config.clear_visibility, "0")}"]'
        )
        if page.query_selector(radio) is not None:
            page.check(radio)

        if page.query_selector('select[name="evalStandardCnt"]') is not None:
            page.select_option(
                'select[name="evalStandardCnt"]',
                rating_threshold_form_value(config.rating_threshold),
            )

        self._apply_tags(config.tags)

        if submission.title_image is not None:
            self._upload_title_image(submission.title_image)

    def _apply_tags(self, tags: Sequence[str | int]) -> None:
        tag_ids = tags_to_ids(tags)
        if not tag_ids:
            return

        page = self.page
        for selected in page.query_selector_all("span.tag.tag_selected"):
            selected.click()
        for tag_id in tag_ids:
            chip = page.query_selector(f'span.tag[data-tagseqn="{tag_id}"]:not(.tag_selected)')
            if chip is not None:
                chip.click()

    def _upload_title_image(self, path: Path) -> None:
        extension = path.suffix.lower().lstrip(".")
        if extension not in TITLE_IMAGE_EXTENSIONS:
            raise RemoteError(f"Unsupported title image format: {extension}")
        if not path.is_file():
            raise RemoteError(f"Title image not found: {path}")
        size = path.stat().st_size
        if size > TITLE_IMAGE_MAX_BYTES:
            raise RemoteError(
                f"Title image too large: {size / 1024 / 1024:.2f}MB (max 5MB)"
            )

        page = self.page
        with page.expect_popup() as popup_info:
            page.click("#imgBtn")
        popup = popup_info.value
        try:
            popup.wait_for_selector("#atchFileUpload", timeout=10000)
            page.eval_on_selector("#fileId", "el => el.value = ''")

            delete_link = popup.query_selector('a[onclick*="fn_deleteFile"]')
            if delete_link is not None:
                delete_link.click()
                popup.wait_for_selector("#labyPopupOk", state="visible", timeout=5000)
                with popup.expect_navigation(wait_until="networkidle", timeout=10000):
                    popup.click("#labyPopupOk")
                popup.wait_for_selector("#atchFileUpload", timeout=10000)

            # A fresh file name keeps the site from serving a cached image.
            upload_name = f"{path.stem}_{secrets.token_hex(4)}{path.suffix}"
            popup.set_input_files(
                "#atchFileUpload",
                files={
                    "name": upload_name,
                    "mimeType": mimetypes.guess_type(path.name)[0] or "application/octet-stream",
                    "buffer": path.read_bytes(),
                },
            )
            popup.click('input[value="파일등록"]')
            page.wait_for_function(
                "() => { const el = document.querySelector('#fileId');"
                " return el && el.value && el.value.trim() !== ''; }",
                timeout=30000,
            )
        finally:
            if not popup.is_closed():
                popup.close()

    # Pages --------------------------------------------------------------

    def create_page(self, labyrinth_id: str, page: PageSubmission) -> str | None:
        self._labyrinth_id = labyrinth_id
        browser_page = self.page
        with _remote_errors("create page"):
            browser_page.goto(
                self._url(CREATE_PAGE_PATH, labyrinthSeqn=labyrinth_id),
                wait_until="networkidle",
            )
            self._fill_page_form(page)
            self._fill_answers(page.answers)
            page_id = self._submit_page_form()
            if page_id is None:
                browser_page.goto(
                    self._url(PAGE_LIST_PATH, labyrinthSeqn=labyrinth_id),
                    wait_until="networkidle",
                )
                page_id = latest_page_id(browser_page.evaluate(_LINKED_PAGE_IDS_JS))
        return page_id

    def update_page(self, labyrinth_id: str, page_id: str, page: PageSubmission) -> None:
        self._labyrinth_id = labyrinth_id
        with _remote_errors("update page"):
            self._open_edit_page(labyrinth_id, page_id)
            self._fill_page_form(page)
            self._clear_answers()
            self._fill_answers(page.answers)
            self._submit_page_form()

    def delete_page(self, labyrinth_id: str, page_id: str) -> bool:
        page = self.page
        with _remote_errors("delete page"):
            page.goto(
                self._url(PAGE_LIST_PATH, labyrinthSeqn=labyrinth_id),
                wait_until="networkidle",
            )
            button = self._find_delete_button(page_id)
            if button is None:
                return False
            button.click()
            self._confirm_popups(limit=1)
            page.wait_for_load_state("networkidle")
        return True

    def _find_delete_button(self, page_id: str) -> ElementHandle | None:
        for row in self.page.query_selector_all("table tbody tr, .quest_list tr"):
            link = row.query_selector('a[onclick*="questSeqn"]')
            if link is None:
                continue
            match = _QUEST_SEQN_PATTERN.search(link.get_attribute("onclick") or "")
            if match is not None and match.group(1) == page_id:
                return row.query_selector('a[onclick*="delete"], input[onclick*="delete"]')
        return None

    def _open_edit_page(self, labyrinth_id: str, page_id: str) -> None:
        # The edit form only opens from the page list, not by direct URL.
        page = self.page
        page.goto(self._url(PAGE_LIST_PATH, labyrinthSeqn=labyrinth_id), wait_until="networkidle")
        link = page.query_selector(
            f"a[onclick*=\"fn_click('{page_id}')\"], a[onclick*='fn_click(\"{page_id}\")']"
        )
        if link is None:
            raise RemoteError(f"Page {page_id} not found in the page list")
        with page.expect_navigation(wait_until="networkidle"):
            link.click()

    def _fill_page_form(self, submission: PageSubmission) -> None:
        page = self.page

        page.fill('#questTitle, input[name="questTitle"]', submission.title)

        color = submission.background_color.upper()
        preset = color if color in PRESET_BACKGROUND_COLORS else "etc"
        radio = f'input[name="back"][value="{preset}"]'
        if page.query_selector(radio) is not None:
            page.check(radio)
        if page.query_selector("#background") is not None:
            page.fill("#background", submission.background_color)

        if page.query_selector("#firstYsno") is not None:
            page.set_checked("#firstYsno", submission.is_first)
        if page.query_selector('select[name="endYn"]') is not None:
            page.select_option('select[name="endYn"]', "Y" if submission.is_ending else "N")
        page.select_option(
            '#answerExistYn, select[name="answerExistYn"]',
            "Y" if submission.has_answers else "N",
        )

        if page.query_selector("#hintcheck") is not None:
            page.set_checked("#hintcheck", bool(submission.hint))
        if submission.hint:
            page.fill('#hint, input[name="hint"]', submission.hint)

        page.wait_for_function(_EDITOR_READY_JS, timeout=10000)
        page.evaluate(_SET_EDITOR_CONTENT_JS, submission.content)

    def _clear_answers(self) -> None:
        page = self.page
        for answer_input in page.query_selector_all("input.answer"):
            if answer_input.input_value().strip():
                answer_input.fill("")

        for _ in range(20):
            visible = [
                link
                for link in page.query_selector_all('a[onclick*="deleteAnswer"]')
                if link.is_visible()
            ]
            if not visible:
                break
            visible[0].click()

    def _fill_answers(self, answers: Sequence[AnswerSubmission]) -> None:
        for answer in answers:
            self._fill_answer(answer)

    def _fill_answer(self, answer: AnswerSubmission) -> None:
        page = self.page
        slot = self._empty_answer_slot()
        if slot is None:
            visible_before = self._visible_answer_count()
            page.click('#addAnswerTr input[type="button"]')
            page.wait_for_function(
                "(count) => Array.from(document.querySelectorAll('input.answer'))"
                ".filter(el => { const tr = el.closest('tr');"
                " return tr && tr.style.display !== 'none'; }).length > count",
                arg=visible_before,
                timeout=5000,
            )
            slot = self._empty_answer_slot()
        if slot is None:
            raise RemoteError("No empty answer row available")

        answer_input = page.query_selector_all("input.answer")[slot]
        answer_input.fill(answer.text)

        options_row = answer_input.evaluate_handle(
            "el => el.closest('tr').nextElementSibling"
        ).as_element()
        if options_row is None:
            return
        public_box = options_row.query_selector("input.answerOpen")
        if public_box is not None:
            public_box.set_checked(answer.is_public)
        explanation = options_row.query_selector("textarea.answerExplain")
        if explanation is not None:
            explanation.fill(answer.explanation)

    def _empty_answer_slot(self) -> int | None:
        for entry in self.page.evaluate(_VISIBLE_ANSWER_INPUTS_JS):
            if entry["visible"] and entry["empty"]:
                return int(entry["index"])
        return None

    def _visible_answer_count(self) -> int:
        return sum(1 for entry in self.page.evaluate(_VISIBLE_ANSWER_INPUTS_JS) if entry["visible"])

    def _submit_page_form(self) -> str | None:
        page = self.page
        page.evaluate(_SYNC_EDITOR_JS)

        button = page.query_selector("#registQuest") or page.query_selector("#updateQuest")
        if button is None:
            raise RemoteError("Save button not found on the page form")
        button.click()
        self._confirm_popups(limit=2)
        page.wait_for_load_state("networkidle")

        page_id = page.evaluate(_CURRENT_PAGE_ID_JS)
        return str(page_id) if page_id else None

    def _confirm_popups(self, *, limit: int) -> None:
        confirm = self.page.locator("#labyPopupOk")
        for _ in range(limit):
            try:
                confirm.wait_for(state="visible", timeout=2000)
            except PlaywrightTimeoutError:
                return
            confirm.click()

    # Links --------------------------------------------------------------

    def clear_predecessor_links(self, labyrinth_id: str, target_id: str) -> None:
        self.replace_predecessor_links(labyrinth_id, target_id, [])

    def set_predecessor_link(
        self, labyrinth_id: str, target_id: str, source_id: str, position: int
    ) -> bool:
        with _remote_errors("set page connection"):
            self._open_edit_page(labyrinth_id, target_id)
            checkbox = self._predecessor_checkbox(source_id, position)
            if checkbox is None:
                return False
            checkbox.check()
            self._submit_page_form()
        return True

    def replace_predecessor_links(
        self,
        labyrinth_id: str,
        target_id: str,
        sources: Sequence[tuple[str, int]],
    ) -> list[tuple[str, int]]:
        # Unchecks and checks happen in one open form and are saved together.
        page = self.page
        wanted = {predecessor_value(source_id, position) for source_id, position in sources}
        with _remote_errors("set page connections"):
            self._open_edit_page(labyrinth_id, target_id)
            for checkbox in page.query_selector_all('input[name="prevQuestCheckList"]'):
                if checkbox.get_attribute("value") not in wanted and checkbox.is_checked():
                    checkbox.uncheck()

            rejected: list[tuple[str, int]] = []
            for source_id, position in sources:
                checkbox = self._predecessor_checkbox(source_id, position)
                if checkbox is None:
                    rejected.append((source_id, position))
                elif not checkbox.is_checked():
                    checkbox.check()
            self._submit_page_form()
        return rejected

    def _predecessor_checkbox(self, source_id: str, position: int) -> ElementHandle | None:
        return self.page.query_selector(
            'input[name="prevQuestCheckList"]'
            f'[value="{predecessor_value(source_id, position)}"]'
        )

    # Images -------------------------------------------------------------

    def upload_asset(self, path: Path) -> str | None:
        if self._labyrinth_id is None:
            raise RemoteError("No labyrinth selected; image uploads need its page editor")

        page = self.page
        with _remote_errors("upload image"):
            editor = self._editor_frame()
            if editor is None:
                page.goto(
                    self._url(CREATE_PAGE_PATH, labyrinthSeqn=self._labyrinth_id),
                    wait_until="networkidle",
                )
                page.wait_for_function(_EDITOR_READY_JS, timeout=10000)
                editor = self._editor_frame()
            if editor is None:
                raise RemoteError("SmartEditor2 frame not found")

            with page.expect_popup() as popup_info:
                editor.click("button.se2_photo")
            popup = popup_info.value
            try:
                popup.wait_for_selector("#uploadInputBox", timeout=10000)
                popup.set_input_files("#uploadInputBox", str(path))
                popup.click("#btn_confirm")
                popup.wait_for_function(_UPLOADED_IMAGE_JS, timeout=30000)
                uploaded = popup.evaluate(_UPLOADED_IMAGE_JS)
            finally:
                if not popup.is_closed():
                    popup.close()

        if not uploaded:
            return None
        return absolute_url(str(uploaded), self._settings.base_url)

    def _editor_frame(self):
        for frame in self.page.frames:
            if "smarteditor" in frame.url:
                return frame
        return None


__all__ = [
    "CHECKBOX_FIELDS",
    "CLEAR_VISIBILITY_FORM_VALUES",
    "PlaywrightGateway",
    "absolute_url",
    "extract_labyrinth_id",
    "latest_page_id",
    "predecessor_value",
    "rating_threshold_form_value",
    "tags_to_ids",
]
