"""Playwright implementation of ``BrowserDriver``."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Frame, Locator, Page, TimeoutError as PlaywrightTimeoutError

from reminder_ops.adapters.browser_driver import DriverError, DriverTimeoutError


def _translate(exc: Exception) -> DriverError:
    if isinstance(exc, PlaywrightTimeoutError):
        return DriverTimeoutError(str(exc))
    return DriverError(str(exc))


def _locator_visible(locator: Locator, timeout_ms: int) -> bool:
    # Playwright reads timeout=0 as "wait forever", so 0 means an instant check here.
    try:
        if timeout_ms <= 0:
            return locator.first.is_visible()
        locator.first.wait_for(state="visible", timeout=timeout_ms)
    except PlaywrightTimeoutError:
        return False
    except PlaywrightError as exc:
        raise _translate(exc) from exc
    return True


class _PlaywrightFrame:
    def __init__(self, frame: Frame) -> None:
        self._frame = frame
        self.name = frame.name or frame.url

    def is_visible(self, selector: str, *, timeout_ms: int) -> bool:
        return _locator_visible(self._frame.locator(selector), timeout_ms)

    def any_visible(self, selectors: Sequence[str], *, timeout_ms: int) -> bool:
        return _locator_visible(self._frame.locator(", ".join(selectors)), timeout_ms)

    def click(self, selector: str, *, timeout_ms: int) -> None:
        try:
            self._frame.locator(selector).first.click(timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc


class PlaywrightDriver:
    """``BrowserDriver`` over a single Playwright page."""

    def __init__(self, page: Page) -> None:
        self.page = page
        self.name = "main"

    def navigate(self, url: str) -> None:
        try:
            self.page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def wait_for_load(self, *, timeout_ms: int) -> None:
        try:
            self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def wait_for_selector(self, selector: str, *, state: str = "visible", timeout_ms: int) -> None:
        try:
            self.page.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def is_visible(self, selector: str, *, timeout_ms: int) -> bool:
        return _locator_visible(self.page.locator(selector), timeout_ms)

    def any_visible(self, selectors: Sequence[str], *, timeout_ms: int) -> bool:
        return _locator_visible(self.page.locator(", ".join(selectors)), timeout_ms)

    def click(self, selector: str, *, timeout_ms: int) -> None:
        try:
            self.page.locator(selector).first.click(timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def fill(self, selector: str, text: str, *, timeout_ms: int) -> None:
        try:
            self.page.locator(selector).fill(text, timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def type_keys(self, selector: str, text: str, *, delay_ms: int, timeout_ms: int) -> None:
        try:
            self.page.locator(selector).click(timeout=timeout_ms)
            self.page.keyboard.type(text, delay=delay_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def inner_text(self, selector: str) -> str | None:
        try:
            handle = self.page.query_selector(selector)
            if handle is None:
                return None
            return handle.inner_text()
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def current_url(self) -> str:
        return self.page.url

    def wait_for_url(self, predicate: Callable[[str], bool], *, timeout_ms: int) -> None:
        try:
            self.page.wait_for_url(predicate, timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def list_frames(self) -> list[_PlaywrightFrame]:
        return [_PlaywrightFrame(frame) for frame in self.page.frames if frame != self.page.main_frame]

    def wait_for_download(self, trigger: Callable[[], None], *, timeout_ms: int) -> bytes:
        try:
            with self.page.expect_download(timeout=timeout_ms) as download_info:
                trigger()
            download = download_info.value
            return Path(download.path()).read_bytes()
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def go_back(self) -> None:
        try:
            self.page.go_back(wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def pause(self, ms: int) -> None:
        self.page.wait_for_timeout(ms)

    def storage_state(self) -> dict[str, Any]:
        try:
            return self.page.context.storage_state()
        except PlaywrightError as exc:
            raise _translate(exc) from exc

    def screenshot(self, path: Path) -> None:
        try:
            self.page.screenshot(path=str(path), full_page=True)
        except PlaywrightError as exc:
            raise _translate(exc) from exc
