from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

PHONE_NOT_FOUND = "Not Found"

PhoneDirectory = dict[str, str]
SessionBlob = dict[str, Any]


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Logical field -> column index table resolved from one header row."""

    header: tuple[str, ...]
    reference: int
    client: int | None = None
    phone: int | None = None
    time: int | None = None
    date: int | None = None
    service: int | None = None
    status: int | None = None
    phone_number: int | None = None


@dataclass(frozen=True, slots=True)
class AppointmentRow:
    values: tuple[str, ...]
    columns: ColumnMap

    def _get(self, index: int | None) -> str:
        if index is None or index >= len(self.values):
            return ""
        return self.values[index].strip()

    @property
    def reference(self) -> str:
        return self._get(self.columns.reference)

    @property
    def client_name(self) -> str:
        return self._get(self.columns.client)

    @property
    def export_phone(self) -> str:
        return self._get(self.columns.phone)

    @property
    def scheduled_date(self) -> str:
        return self._get(self.columns.date)

    @property
    def time_slot(self) -> str:
        return self._get(self.columns.time)

    @property
    def service_name(self) -> str:
        return self._get(self.columns.service)

    @property
    def status(self) -> str:
        return self._get(self.columns.status)


@dataclass(frozen=True, slots=True)
class ConsolidatedRow:
    row: AppointmentRow
    phone_number: str


@dataclass(slots=True)
class NormalizedContact:
    key: str
    rows: list[ConsolidatedRow] = field(default_factory=list)
    earliest: ConsolidatedRow | None = None
    services: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReminderEntry:
    display_name: str
    first_name: str
    phone: str
    scheduled_date: str
    time_slot: str
    services: str
    message: str
    deep_link: str
    appointment_count: int = 1


@dataclass(frozen=True, slots=True)
class PortalExport:
    """What the browser half of a run hands to the offline half."""

    csv_text: str
    phone_directory: PhoneDirectory
    enrichment_records: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RunArtifacts:
    target_date: date
    consolidated_csv: str
    reminder_sheet: str
    summary: dict[str, Any] = field(default_factory=dict)
