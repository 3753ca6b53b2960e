"""Date-scoped report export: NAVIGATE -> OPEN_EXPORT_MENU -> DOWNLOAD -> DONE | FAILED."""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from pathlib import Path
from urllib.parse import urlencode

from reminder_ops.adapters.browser_driver import BrowserDriver, DriverError
from reminder_ops.domain.errors import ExportError
from reminder_ops.settings import PortalSettings
from reminder_ops.utils.retry import retry_transient
from reminder_ops.workflows.machine import run_state_machine

logger = logging.getLogger(__name__)


class ExportState(Enum):
    NAVIGATE = "navigate"
    OPEN_EXPORT_MENU = "open_export_menu"
    DOWNLOAD = "download"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ExportState.DONE, ExportState.FAILED})


def report_url(portal: PortalSettings, target_date: date) -> str:
    day = target_date.isoformat()
    query = urlencode({"report-date-from": day, "report-date-to": day})
    return f"{portal.appointments_url}?{query}"


def decode_export(payload: bytes) -> str:
    """Decode the downloaded CSV; a UTF-8 BOM is dropped."""
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Export is not UTF-8; decoding as cp1252")
        return payload.decode("cp1252", errors="replace")


class ReportExportFlow:
    def __init__(
        self,
        driver: BrowserDriver,
        *,
        portal: PortalSettings,
        target_date: date,
        screenshots_dir: Path | None = None,
        retry_delay_s: float = 0.6,
    ) -> None:
        self.driver = driver
        self.portal = portal
        self.target_date = target_date
        self.screenshots_dir = screenshots_dir
        self.retry_delay_s = retry_delay_s
        self.payload: bytes | None = None
        self.failure: str | None = None
        self.history: list[ExportState] = []

    def _navigate(self) -> ExportState:
        url = report_url(self.portal, self.target_date)
        logger.info("Opening appointments report for %s", self.target_date.isoformat())
        self.driver.navigate(url)
        self.driver.pause(self.portal.settle_after_navigation_ms)
        return ExportState.OPEN_EXPORT_MENU

    def _open_export_menu(self) -> ExportState:
        timeouts = self.portal.timeouts
        self.driver.wait_for_selector(self.portal.export_trigger_selector, timeout_ms=timeouts.export_trigger_ms)
        self.driver.click(self.portal.export_trigger_selector, timeout_ms=timeouts.export_trigger_ms)
        self.driver.wait_for_selector(self.portal.export_format_selector, timeout_ms=timeouts.export_format_ms)
        return ExportState.DOWNLOAD

    def _download(self) -> ExportState:
        timeouts = self.portal.timeouts
        logger.info("Exporting report...")
        self.payload = self.driver.wait_for_download(
            lambda: self.driver.click(self.portal.export_format_selector, timeout_ms=timeouts.export_format_ms),
            timeout_ms=timeouts.download_ms,
        )
        if not self.payload:
            self.failure = "Download finished without content"
            return ExportState.FAILED
        return ExportState.DONE

    def _attempt(self) -> ExportState:
        self.history.clear()
        return run_state_machine(
            "export",
            ExportState.NAVIGATE,
            {
                ExportState.NAVIGATE: self._navigate,
                ExportState.OPEN_EXPORT_MENU: self._open_export_menu,
                ExportState.DOWNLOAD: self._download,
            },
            TERMINAL_STATES,
            trace=self.history,
        )

    def run(self) -> bytes:
        """Return the raw CSV bytes or raise ``ExportError``."""
        try:
            final = retry_transient(
                "export",
                self._attempt,
                driver=self.driver,
                screenshots_dir=self.screenshots_dir,
                attempts=self.portal.export_attempts,
                delay_s=self.retry_delay_s,
            )
        except DriverError as exc:
            stage = self.history[-1].value if self.history else ExportState.NAVIGATE.value
            raise ExportError(f"Export failed during {stage}: {exc}") from exc

        if final is ExportState.FAILED or self.payload is None:
            raise ExportError(self.failure or "Export produced no file")
        logger.info("Downloaded %s bytes of report data", len(self.payload))
        return self.payload
