from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Callable

import pytest

from reminder_ops.adapters.browser_driver import DriverError, DriverTimeoutError
from reminder_ops.settings import FlowTimeouts, PortalSettings, Settings


SAMPLE_EXPORT = (
    '"Referência","Cliente","Data agendada","Horário","Serviço","Situação"\n'
    '"R1","Ana Silva","2024-05-10","09:00","Corte","Confirmado"\n'
    '"R2","Ana Silva","2024-05-10","11:00","Coloração","Confirmado"\n'
)


class FakeFrame:
    def __init__(self, name: str, visible: set[str] | None = None, broken: set[str] | None = None) -> None:
        self.name = name
        self.visible = set(visible or ())
        self.broken = set(broken or ())
        self.clicked: list[str] = []
        self.visibility_waits: list[int] = []

    def is_visible(self, selector: str, *, timeout_ms: int) -> bool:
        if timeout_ms:
            self.visibility_waits.append(timeout_ms)
        return selector in self.visible

    def any_visible(self, selectors, *, timeout_ms: int) -> bool:
        self.visibility_waits.append(timeout_ms)
        return any(selector in self.visible for selector in selectors)

    def click(self, selector: str, *, timeout_ms: int) -> None:
        if selector in self.broken:
            raise DriverError(f"element intercepts pointer events: {selector}")
        if selector not in self.visible:
            raise DriverTimeoutError(f"Timeout waiting for selector {selector}")
        self.clicked.append(selector)


class FakeDriver(FakeFrame):
    """Scripted stand-in for a browser page.

    ``redirects`` rewrites navigated URLs, ``on_click`` runs side effects for a
    selector (e.g. changing the URL after submitting a login form).
    """

    def __init__(
        self,
        *,
        url: str = "about:blank",
        visible: set[str] | None = None,
        texts: dict[str, str] | None = None,
        redirects: dict[str, str] | None = None,
        on_click: dict[str, Callable[["FakeDriver"], None]] | None = None,
        download: bytes | None = None,
        frames: list[FakeFrame] | None = None,
        broken: set[str] | None = None,
    ) -> None:
        super().__init__("main", visible=visible, broken=broken)
        self.url = url
        self.texts = dict(texts or {})
        self.redirects = dict(redirects or {})
        self.on_click = dict(on_click or {})
        self.download = download
        self.frames = list(frames or [])
        self.calls: list[tuple[Any, ...]] = []
        self.typed: list[tuple[str, str, int]] = []
        self.screenshots: list[Path] = []

    def navigate(self, url: str) -> None:
        self.calls.append(("navigate", url))
        target = url
        for prefix, redirect in self.redirects.items():
            if url.startswith(prefix):
                target = redirect
                break
        self.url = target

    def wait_for_load(self, *, timeout_ms: int) -> None:
        self.calls.append(("wait_for_load",))

    def wait_for_selector(self, selector: str, *, state: str = "visible", timeout_ms: int) -> None:
        self.calls.append(("wait_for_selector", selector))
        if selector not in self.visible:
            raise DriverTimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for {selector}")

    def click(self, selector: str, *, timeout_ms: int) -> None:
        self.calls.append(("click", selector))
        super().click(selector, timeout_ms=timeout_ms)
        hook = self.on_click.get(selector)
        if hook is not None:
            hook(self)

    def fill(self, selector: str, text: str, *, timeout_ms: int) -> None:
        self.calls.append(("fill", selector))
        if selector not in self.visible:
            raise DriverTimeoutError(f"Timeout waiting for {selector}")
        self.typed.append((selector, text, 0))

    def type_keys(self, selector: str, text: str, *, delay_ms: int, timeout_ms: int) -> None:
        self.calls.append(("type_keys", selector))
        if selector not in self.visible:
            raise DriverTimeoutError(f"Timeout waiting for {selector}")
        self.typed.append((selector, text, delay_ms))

    def inner_text(self, selector: str) -> str | None:
        self.calls.append(("inner_text", selector))
        return self.texts.get(selector)

    def current_url(self) -> str:
        return self.url

    def wait_for_url(self, predicate: Callable[[str], bool], *, timeout_ms: int) -> None:
        self.calls.append(("wait_for_url", self.url))
        if not predicate(self.url):
            raise DriverTimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for URL")

    def list_frames(self) -> list[FakeFrame]:
        return self.frames

    def wait_for_download(self, trigger: Callable[[], None], *, timeout_ms: int) -> bytes:
        self.calls.append(("wait_for_download",))
        trigger()
        if self.download is None:
            raise DriverTimeoutError("Timeout waiting for download")
        return self.download

    def go_back(self) -> None:
        self.calls.append(("go_back",))
        hook = self.on_click.get("__back__")
        if hook is not None:
            hook(self)

    def pause(self, ms: int) -> None:
        self.calls.append(("pause", ms))

    def storage_state(self) -> dict[str, Any]:
        return {"cookies": [{"name": "_fresha_session", "value": "abc"}], "origins": []}

    def screenshot(self, path: Path) -> None:
        Path(path).write_bytes(b"png")
        self.screenshots.append(Path(path))

    def names(self, kind: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def portal() -> PortalSettings:
    fast = FlowTimeouts(
        consent_visible_ms=10,
        network_idle_ms=10,
        login_field_ms=10,
        login_redirect_ms=10,
        export_trigger_ms=10,
        export_format_ms=10,
        download_ms=10,
        reference_visible_ms=10,
        contact_control_ms=10,
    )
    return PortalSettings(base_url="https://partners.example.test", timeouts=fast, typing_delay_ms=25)


@pytest.fixture
def settings(tmp_path: Path, portal: PortalSettings) -> Settings:
    return replace(
        Settings(),
        portal=portal,
        output_dir=tmp_path / "artifacts",
        session_state_path=tmp_path / "browser" / "session.json",
        screenshots_dir=tmp_path / "screenshots",
    )
