"""Group consolidated appointments into one reminder per contact."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any, Iterable
from urllib.parse import quote

from reminder_ops.domain.models import ConsolidatedRow, NormalizedContact, ReminderEntry
from reminder_ops.settings import ReminderSettings
from reminder_ops.utils.logging import get_structured_logger, log_workflow_event
from reminder_ops.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

WHATSAPP_SEND_URL = "https://web.whatsapp.com/send"
UNKNOWN_PREFIX = "unknown:"
WORKFLOW_STEP = "contact_grouping"

MONTH_NAMES: dict[str, tuple[str, ...]] = {
    "pt": (
        "janeiro", "fevereiro", "março", "abril", "maio", "junho",
        "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
    ),
    "en": (
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
}

TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%H.%M", "%I:%M %p", "%I:%M%p", "%Hh%M")
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d %b %Y", "%d %B %Y", "%Y-%m-%d %H:%M")


def parse_time_slot(value: str) -> time | None:
    text = value.strip()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def parse_scheduled_date(value: str) -> date | None:
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def format_reminder_date(value: str, locale: str = "pt") -> str:
    """'2024-05-10' -> '10 de maio' (pt) or '10 May' (en); unparseable input is returned as is."""
    parsed = parse_scheduled_date(value)
    if parsed is None:
        return value.strip()
    month = MONTH_NAMES.get(locale, MONTH_NAMES["pt"])[parsed.month - 1]
    if locale == "en":
        return f"{parsed.day} {month}"
    return f"{parsed.day:02d} de {month}"


def first_name_of(client_name: str, fallback: str) -> str:
    parts = client_name.strip().split()
    return parts[0] if parts else fallback


def is_cancelled(status: str, terms: Iterable[str]) -> bool:
    folded = status.strip().casefold()
    return bool(folded) and any(folded == term.strip().casefold() for term in terms)


def _slot_sort_key(item: ConsolidatedRow) -> tuple[bool, time]:
    # Unparseable times sort last; min() keeps the first-seen row on ties.
    parsed = parse_time_slot(item.row.time_slot)
    return parsed is None, parsed or time.min


def build_deep_link(country_code: str, phone: str, message: str) -> str:
    return f"{WHATSAPP_SEND_URL}?phone={country_code}{phone}&text={quote(message, safe='')}"


class ContactGrouper:
    def __init__(self, settings: ReminderSettings | None = None) -> None:
        self.settings = settings or ReminderSettings()
        self.events = get_structured_logger()
        self.records: list[dict[str, Any]] = []

    def contact_key(self, item: ConsolidatedRow, position: int = 0) -> str:
        """Normalized phone, or a per-row key when the phone is unknown.

        Rows without a reference fall back to their position in the file.
        """
        key = normalize_phone(item.phone_number, self.settings.country_codes)
        if key:
            return key
        if self.settings.unknown_phone_policy == "merge":
            return ""
        return f"{UNKNOWN_PREFIX}{item.row.reference or f'#{position}'}"

    def eligible_rows(self, rows: Iterable[ConsolidatedRow]) -> list[ConsolidatedRow]:
        """Drop cancelled rows; the exclusion is final."""
        kept: list[ConsolidatedRow] = []
        for item in rows:
            if is_cancelled(item.row.status, self.settings.cancellation_terms):
                self.records.append({"reference": item.row.reference, "status": "skipped", "reason": "cancelled"})
                log_workflow_event(
                    self.events,
                    workflow_step=WORKFLOW_STEP,
                    reference=item.row.reference,
                    client_name=item.row.client_name,
                    status="skipped",
                    message="Cancelled appointment excluded",
                )
                continue
            self.records.append({"reference": item.row.reference, "status": "grouped"})
            kept.append(item)
        return kept

    def group(self, rows: Iterable[ConsolidatedRow]) -> list[NormalizedContact]:
        contacts: dict[str, NormalizedContact] = {}
        for position, item in enumerate(self.eligible_rows(rows), start=1):
            key = self.contact_key(item, position)
            contact = contacts.setdefault(key, NormalizedContact(key=key))
            contact.rows.append(item)
            service = item.row.service_name
            if service and service not in contact.services:
                contact.services.append(service)

        for contact in contacts.values():
            contact.earliest = min(contact.rows, key=_slot_sort_key)

        merged = contacts.get("")
        if merged is not None and len({item.row.client_name for item in merged.rows}) > 1:
            logger.warning(
                "%s appointments without a phone number share one reminder entry (unknown phone policy: merge)",
                len(merged.rows),
            )
        return list(contacts.values())

    def compose_message(self, first_name: str, scheduled_date: str, time_slot: str, services: str) -> str:
        return self.settings.message_template.format(
            first_name=first_name,
            date=format_reminder_date(scheduled_date, self.settings.date_locale),
            time=time_slot,
            services=services,
            business_name=self.settings.business_name,
        )

    def to_entry(self, contact: NormalizedContact) -> ReminderEntry:
        representative = contact.earliest or contact.rows[0]
        row = representative.row
        first_name = first_name_of(row.client_name, self.settings.fallback_first_name)
        services = ", ".join(contact.services)
        message = self.compose_message(first_name, row.scheduled_date, row.time_slot, services)
        phone = "" if contact.key.startswith(UNKNOWN_PREFIX) else contact.key
        deep_link = build_deep_link(self.settings.deep_link_country_code, phone, message) if phone else ""
        return ReminderEntry(
            display_name=row.client_name or self.settings.fallback_first_name,
            first_name=first_name,
            phone=phone,
            scheduled_date=row.scheduled_date,
            time_slot=row.time_slot,
            services=services,
            message=message,
            deep_link=deep_link,
            appointment_count=len(contact.rows),
        )

    def build_entries(self, rows: Iterable[ConsolidatedRow]) -> list[ReminderEntry]:
        return [self.to_entry(contact) for contact in self.group(rows)]
