"""Narrow browser capability surface used by the portal flows.

Flows depend on ``BrowserDriver`` only, so they run against a fake in tests.
The production implementation lives in ``playwright_driver`` and translates
Playwright errors into ``DriverError``/``DriverTimeoutError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Protocol, Sequence


class DriverError(Exception):
    """A browser action failed."""


class DriverTimeoutError(DriverError):
    """A bounded wait expired."""


class FrameHandle(Protocol):
    name: str

    def is_visible(self, selector: str, *, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for ``selector``; 0 checks the current state only."""
        ...

    def any_visible(self, selectors: Sequence[str], *, timeout_ms: int) -> bool:
        """One bounded wait for whichever of ``selectors`` shows up first."""
        ...

    def click(self, selector: str, *, timeout_ms: int) -> None: ...


class BrowserDriver(FrameHandle, Protocol):
    def navigate(self, url: str) -> None: ...

    def wait_for_load(self, *, timeout_ms: int) -> None: ...

    def wait_for_selector(self, selector: str, *, state: str = "visible", timeout_ms: int) -> None: ...

    def fill(self, selector: str, text: str, *, timeout_ms: int) -> None: ...

    def type_keys(self, selector: str, text: str, *, delay_ms: int, timeout_ms: int) -> None: ...

    def inner_text(self, selector: str) -> str | None: ...

    def current_url(self) -> str: ...

    def wait_for_url(self, predicate: Callable[[str], bool], *, timeout_ms: int) -> None: ...

    def list_frames(self) -> Sequence[FrameHandle]: ...

    def wait_for_download(self, trigger: Callable[[], None], *, timeout_ms: int) -> bytes: ...

    def go_back(self) -> None: ...

    def pause(self, ms: int) -> None: ...

    def storage_state(self) -> dict[str, Any]: ...

    def screenshot(self, path: Path) -> None: ...
