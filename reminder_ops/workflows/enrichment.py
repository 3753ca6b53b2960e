"""Recover phone numbers by opening each appointment's detail view.

Per reference: WAIT_REFERENCE -> OPEN_DETAIL -> SETTLE -> READ_CONTACT -> RETURN -> DONE.
References are processed one at a time; the list view is shared state.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

from reminder_ops.adapters.browser_driver import BrowserDriver, DriverError, DriverTimeoutError
from reminder_ops.domain.errors import EnrichmentError
from reminder_ops.domain.models import PHONE_NOT_FOUND, PhoneDirectory
from reminder_ops.settings import PortalSettings
from reminder_ops.utils.logging import get_structured_logger, log_workflow_event
from reminder_ops.workflows.machine import run_state_machine

logger = logging.getLogger(__name__)

WORKFLOW_STEP = "phone_enrichment"


class EnrichState(Enum):
    WAIT_REFERENCE = "wait_reference"
    OPEN_DETAIL = "open_detail"
    SETTLE = "settle"
    READ_CONTACT = "read_contact"
    RETURN = "return"
    DONE = "done"


def reference_selector(reference: str) -> str:
    escaped = reference.replace("\\", "\\\\").replace('"', '\\"')
    return f'text="{escaped}"'


class _ReferenceCycle:
    """One enrichment cycle for a single reference."""

    def __init__(self, driver: BrowserDriver, portal: PortalSettings, reference: str) -> None:
        self.driver = driver
        self.portal = portal
        self.reference = reference
        self.selector = reference_selector(reference)
        self.phone = PHONE_NOT_FOUND
        self.detail_open = False
        self.trace: list[EnrichState] = []

    def _wait_reference(self) -> EnrichState:
        try:
            self.driver.wait_for_selector(
                self.selector, state="visible", timeout_ms=self.portal.timeouts.reference_visible_ms
            )
        except DriverError as exc:
            raise EnrichmentError(self.reference, f"reference not visible in list: {exc}") from exc
        return EnrichState.OPEN_DETAIL

    def _open_detail(self) -> EnrichState:
        try:
            self.driver.click(self.selector, timeout_ms=self.portal.timeouts.reference_visible_ms)
        except DriverError as exc:
            raise EnrichmentError(self.reference, f"could not open detail view: {exc}") from exc
        self.detail_open = True
        return EnrichState.SETTLE

    def _settle(self) -> EnrichState:
        self.driver.pause(self.portal.enrich_settle_ms)
        return EnrichState.READ_CONTACT

    def _read_contact(self) -> EnrichState:
        selector = self.portal.contact_number_selector
        try:
            self.driver.wait_for_selector(selector, timeout_ms=self.portal.timeouts.contact_control_ms)
            text = self.driver.inner_text(selector)
        except DriverTimeoutError:
            logger.debug("No contact control on detail view for %s", self.reference)
            return EnrichState.RETURN
        except DriverError as exc:
            raise EnrichmentError(self.reference, f"contact control unreadable: {exc}") from exc
        if text is not None and text.strip():
            self.phone = text.strip()
        return EnrichState.RETURN

    def _return(self) -> EnrichState:
        self.driver.go_back()
        self.detail_open = False
        return EnrichState.DONE

    def run(self) -> str:
        run_state_machine(
            "enrichment",
            EnrichState.WAIT_REFERENCE,
            {
                EnrichState.WAIT_REFERENCE: self._wait_reference,
                EnrichState.OPEN_DETAIL: self._open_detail,
                EnrichState.SETTLE: self._settle,
                EnrichState.READ_CONTACT: self._read_contact,
                EnrichState.RETURN: self._return,
            },
            {EnrichState.DONE},
            trace=self.trace,
        )
        return self.phone


class PhoneEnricher:
    def __init__(self, driver: BrowserDriver, *, portal: PortalSettings) -> None:
        self.driver = driver
        self.portal = portal
        self.events = get_structured_logger()
        self.records: list[dict[str, Any]] = []

    def _recover_list_view(self, cycle: _ReferenceCycle) -> None:
        if not cycle.detail_open:
            return
        try:
            self.driver.go_back()
        except DriverError as exc:
            logger.warning("Could not return to list view after %s: %s", cycle.reference, exc)

    def enrich_one(self, reference: str) -> str:
        """Return the phone shown for ``reference`` or the ``Not Found`` sentinel."""
        cycle = _ReferenceCycle(self.driver, self.portal, reference)
        try:
            phone = cycle.run()
        except (EnrichmentError, DriverError) as exc:
            self._recover_list_view(cycle)
            self.records.append({"reference": reference, "status": "failed", "reason": type(exc).__name__})
            log_workflow_event(
                self.events,
                workflow_step=WORKFLOW_STEP,
                reference=reference,
                status="failed",
                error_code=type(exc).__name__.upper(),
                error_message=str(exc),
                message="Phone enrichment failed",
            )
            return PHONE_NOT_FOUND

        status = "not_found" if phone == PHONE_NOT_FOUND else "enriched"
        self.records.append({"reference": reference, "status": status})
        log_workflow_event(
            self.events,
            workflow_step=WORKFLOW_STEP,
            reference=reference,
            status=status,
            message="Phone number recovered" if status == "enriched" else "No contact number on detail view",
        )
        return phone

    def enrich(self, references: Iterable[str]) -> PhoneDirectory:
        directory: PhoneDirectory = {}
        for reference in references:
            if not reference or reference in directory:
                continue
            directory[reference] = self.enrich_one(reference)
        return directory
