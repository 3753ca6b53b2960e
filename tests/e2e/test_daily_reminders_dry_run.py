from __future__ import annotations

import csv
from datetime import date
from pathlib import Path

import pytest
from conftest import SAMPLE_EXPORT, FakeDriver

from reminder_ops.adapters.credentials import Credentials, StaticCredentialSource
from reminder_ops.adapters.session_store import SessionStore
from reminder_ops.domain.models import PortalExport
from reminder_ops.jobs.daily_reminders import run
from reminder_ops.processing.consolidator import CsvConsolidator
from reminder_ops.settings import RunContext, Settings
from reminder_ops.workflows.authentication import AuthenticationFlow
from reminder_ops.workflows.enrichment import PhoneEnricher, reference_selector
from reminder_ops.workflows.export import ReportExportFlow, decode_export

PHONES = {"R1": "+351 912 345 678", "R2": "912345678"}


def _scripted_portal(settings: Settings) -> FakeDriver:
    portal = settings.portal

    def _login(driver: FakeDriver) -> None:
        driver.url = portal.appointments_url
        driver.redirects.clear()

    def _opener(phone: str):
        def _open(driver: FakeDriver) -> None:
            driver.visible.add(portal.contact_number_selector)
            driver.texts[portal.contact_number_selector] = phone

        return _open

    def _back(driver: FakeDriver) -> None:
        driver.visible.discard(portal.contact_number_selector)
        driver.texts.pop(portal.contact_number_selector, None)

    on_click = {portal.login_selector: _login, "__back__": _back}
    on_click.update({reference_selector(ref): _opener(phone) for ref, phone in PHONES.items()})
    return FakeDriver(
        visible={
            portal.email_selector,
            portal.continue_selector,
            portal.password_selector,
            portal.login_selector,
            portal.export_trigger_selector,
            portal.export_format_selector,
            *(reference_selector(ref) for ref in PHONES),
        },
        redirects={portal.appointments_url: f"{portal.base_url}/users/sign-in"},
        on_click=on_click,
        download=("\ufeff" + SAMPLE_EXPORT).encode("utf-8"),
    )


@pytest.mark.e2e
def test_daily_reminders_run_against_scripted_portal(settings: Settings) -> None:
    driver = _scripted_portal(settings)

    def fake_portal_loader(run_context: RunContext) -> PortalExport:
        store = SessionStore(settings.session_state_path)
        AuthenticationFlow(
            driver,
            portal=settings.portal,
            credentials=StaticCredentialSource(Credentials(email="studio@example.test", password="pw")),
            session_store=store,
            session_loaded=store.load() is not None,
        ).run()
        csv_text = decode_export(
            ReportExportFlow(driver, portal=settings.portal, target_date=run_context.target_date).run()
        )
        enricher = PhoneEnricher(driver, portal=settings.portal)
        directory = enricher.enrich(CsvConsolidator().references_needing_phone(csv_text))
        return PortalExport(csv_text=csv_text, phone_directory=directory, enrichment_records=enricher.records)

    artifacts = run(target_date=date(2024, 5, 10), settings=settings, portal_loader=fake_portal_loader)

    assert settings.session_state_path.exists()

    csv_path = Path(artifacts.consolidated_csv)
    assert csv_path.name == "appointments_2024-05-10.csv"
    with csv_path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0][-1] == "PhoneNumber"
    assert [row[-1] for row in rows[1:]] == ["+351 912 345 678", "912345678"]

    sheet = Path(artifacts.reminder_sheet).read_text(encoding="utf-8")
    assert "Ana Silva" in sheet
    assert "Corte, Coloração" in sheet
    assert "09:00" in sheet
    assert "phone=351912345678" in sheet

    summary = artifacts.summary
    assert summary["exported_rows"] == 2
    assert summary["enrichment"] == {"attempted": 2, "enriched": 2, "not_found": 0, "failed": 0}
    assert summary["contacts"] == 1


@pytest.mark.e2e
def test_rerun_from_consolidated_csv_keeps_phones(settings: Settings) -> None:
    first = run(
        target_date=date(2024, 5, 10),
        settings=settings,
        portal_loader=lambda _ctx: PortalExport(csv_text=SAMPLE_EXPORT, phone_directory={"R1": "911111111"}),
    )
    consolidated = Path(first.consolidated_csv).read_text(encoding="utf-8")

    second = run(
        target_date=date(2024, 5, 10),
        settings=settings,
        portal_loader=lambda _ctx: PortalExport(csv_text=consolidated, phone_directory={}),
    )

    assert Path(second.consolidated_csv).read_text(encoding="utf-8") == consolidated
    assert second.summary["contacts"] == 2
