"""Runtime entrypoint for the daily reminder sheet.

The browser half (login, export, phone enrichment) runs inside one
Playwright context that is always closed before the offline half
(consolidation, grouping, rendering) starts.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable

from reminder_ops.adapters.browser_driver import DriverError
from reminder_ops.adapters.credentials import CredentialSource, credential_source_for
from reminder_ops.adapters.session_store import SessionStore
from reminder_ops.domain.errors import SessionError
from reminder_ops.domain.models import PortalExport, RunArtifacts
from reminder_ops.processing.consolidator import CsvConsolidator
from reminder_ops.processing.grouping import ContactGrouper
from reminder_ops.reporting.reminder_sheet import write_reminder_sheet
from reminder_ops.reporting.summary import compute_summary
from reminder_ops.settings import RunContext, Settings
from reminder_ops.workflows.authentication import AuthenticationFlow
from reminder_ops.workflows.enrichment import PhoneEnricher
from reminder_ops.workflows.export import ReportExportFlow, decode_export

logger = logging.getLogger(__name__)

PortalLoader = Callable[[RunContext], PortalExport]


def _launch(playwright: Any, settings: Settings, store: SessionStore):
    browser = playwright.chromium.launch(headless=settings.headless)
    context_kwargs: dict[str, Any] = {}
    state = store.load()
    if state is not None:
        context_kwargs["storage_state"] = state
    context = browser.new_context(**context_kwargs)
    return browser, context, state is not None


def load_from_portal(run_context: RunContext, credentials: CredentialSource | None = None) -> PortalExport:
    """Authenticate, export the target date's report and enrich rows lacking a phone."""
    from playwright.sync_api import sync_playwright

    from reminder_ops.adapters.playwright_driver import PlaywrightDriver

    settings = run_context.settings
    store = SessionStore(settings.session_state_path)
    credentials = credentials or credential_source_for(settings.credential_source)
    consolidator = CsvConsolidator(settings.reminders.columns)

    with sync_playwright() as playwright:
        browser, context, session_loaded = _launch(playwright, settings, store)
        try:
            driver = PlaywrightDriver(context.new_page())
            AuthenticationFlow(
                driver,
                portal=settings.portal,
                credentials=credentials,
                session_store=store,
                session_loaded=session_loaded,
                screenshots_dir=settings.screenshots_dir,
            ).run()

            payload = ReportExportFlow(
                driver,
                portal=settings.portal,
                target_date=run_context.target_date,
                screenshots_dir=settings.screenshots_dir,
            ).run()
            csv_text = decode_export(payload)

            references = consolidator.references_needing_phone(csv_text)
            logger.info("Looking up phone numbers for %s appointments", len(references))
            enricher = PhoneEnricher(driver, portal=settings.portal)
            directory = enricher.enrich(references)
        finally:
            context.close()
            browser.close()

    return PortalExport(csv_text=csv_text, phone_directory=directory, enrichment_records=enricher.records)


def authenticate_only(settings: Settings, credentials: CredentialSource | None = None) -> Path:
    """Log in (or confirm the saved session) and make sure the session file is written."""
    from playwright.sync_api import sync_playwright

    from reminder_ops.adapters.playwright_driver import PlaywrightDriver

    store = SessionStore(settings.session_state_path)
    credentials = credentials or credential_source_for(settings.credential_source)

    with sync_playwright() as playwright:
        browser, context, session_loaded = _launch(playwright, settings, store)
        try:
            driver = PlaywrightDriver(context.new_page())
            AuthenticationFlow(
                driver,
                portal=settings.portal,
                credentials=credentials,
                session_store=store,
                session_loaded=session_loaded,
                screenshots_dir=settings.screenshots_dir,
            ).run()
            # Unlike a run, a session that cannot be written fails this command.
            try:
                store.write(driver.storage_state())
            except DriverError as exc:
                raise SessionError(f"Could not capture session state: {exc}") from exc
        finally:
            context.close()
            browser.close()
    return store.path


def build_artifacts(run_context: RunContext, export: PortalExport) -> RunArtifacts:
    """Consolidate, group and render; no browser involved."""
    settings = run_context.settings
    consolidator = CsvConsolidator(settings.reminders.columns)
    result = consolidator.consolidate(export.csv_text, export.phone_directory)
    csv_path = consolidator.write(result, run_context.consolidated_csv_path)

    grouper = ContactGrouper(settings.reminders)
    entries = grouper.build_entries(result.rows)
    sheet_path = write_reminder_sheet(
        entries,
        path=run_context.reminder_sheet_path,
        target_date=run_context.target_date,
    )

    summary = compute_summary(
        exported_rows=len(result.rows),
        enrichment_records=export.enrichment_records,
        grouping_records=grouper.records,
        contacts=len(entries),
        skipped_rows=result.skipped_rows,
    )
    logger.info(
        "Run completed: rows=%s enriched=%s not_found=%s cancelled=%s contacts=%s csv=%s sheet=%s",
        summary["exported_rows"],
        summary["enrichment"]["enriched"],
        summary["enrichment"]["not_found"] + summary["enrichment"]["failed"],
        summary["skipped"]["reasons"].get("cancelled", 0),
        summary["contacts"],
        csv_path,
        sheet_path,
    )
    return RunArtifacts(
        target_date=run_context.target_date,
        consolidated_csv=str(csv_path),
        reminder_sheet=str(sheet_path),
        summary=summary,
    )


def run(
    *,
    target_date: date,
    settings: Settings,
    portal_loader: PortalLoader | None = None,
) -> RunArtifacts:
    """Produce the consolidated CSV and reminder sheet for ``target_date``."""
    run_context = RunContext(target_date=target_date, settings=settings)
    loader = portal_loader or load_from_portal
    logger.info("Preparing reminders for %s", target_date.isoformat())
    export = loader(run_context)
    return build_artifacts(run_context, export)


def rebuild(*, export_csv: Path | str, target_date: date, settings: Settings) -> RunArtifacts:
    """Regenerate both artifacts from a saved export or consolidated CSV."""
    text = Path(export_csv).read_text(encoding="utf-8-sig")
    return run(
        target_date=target_date,
        settings=settings,
        portal_loader=lambda _ctx: PortalExport(csv_text=text, phone_directory={}),
    )
