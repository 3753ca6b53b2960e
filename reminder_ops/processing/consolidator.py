"""Merge the raw portal export with recovered phone numbers.

Consolidation is a schema transform only: it appends one ``PhoneNumber``
column and never filters rows on business rules.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from reminder_ops.domain.errors import ParsingError
from reminder_ops.domain.models import AppointmentRow, ColumnMap, ConsolidatedRow, PhoneDirectory
from reminder_ops.settings import ColumnSynonyms

logger = logging.getLogger(__name__)

PHONE_COLUMN = "PhoneNumber"

LOGICAL_FIELDS = ("client", "phone", "time", "date", "service", "status")


def _fold(value: str) -> str:
    return value.strip().strip('"').strip().casefold()


def resolve_columns(
    header: Sequence[str],
    synonyms: ColumnSynonyms,
    phone_column: str = PHONE_COLUMN,
) -> ColumnMap | None:
    """Map logical fields to column indexes, or None when no reference column exists.

    Matching is a case-insensitive substring test; synonyms are tried in
    precedence order and the first header cell containing one wins.
    """
    cells = [_fold(cell) for cell in header]
    appended = _fold(phone_column)
    phone_number = next((i for i, cell in enumerate(cells) if cell == appended), None)

    def _find(name: str) -> int | None:
        for synonym in synonyms.for_field(name):
            needle = synonym.casefold()
            for index, cell in enumerate(cells):
                if index != phone_number and needle in cell:
                    return index
        return None

    reference = _find("reference")
    if reference is None:
        return None
    found = {name: _find(name) for name in LOGICAL_FIELDS}
    return ColumnMap(
        header=tuple(cell.strip() for cell in header),
        reference=reference,
        phone_number=phone_number,
        **found,
    )


def read_rows(text: str) -> list[list[str]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    return [row for row in reader if any(cell.strip() for cell in row)]


@dataclass(slots=True)
class ConsolidationResult:
    columns: ColumnMap | None
    rows: list[ConsolidatedRow] = field(default_factory=list)
    skipped_rows: int = 0
    repeated_headers: int = 0

    @property
    def header(self) -> list[str]:
        if self.columns is None:
            return []
        header = list(self.columns.header)
        if self.columns.phone_number is None:
            header.append(PHONE_COLUMN)
        return header

    def output_rows(self) -> list[list[str]]:
        rows: list[list[str]] = []
        if self.columns is None:
            return rows
        rows.append(self.header)
        for item in self.rows:
            values = list(item.row.values)
            if self.columns.phone_number is None:
                values.append(item.phone_number)
            else:
                values[self.columns.phone_number] = item.phone_number
            rows.append(values)
        return rows


class CsvConsolidator:
    def __init__(self, synonyms: ColumnSynonyms | None = None, phone_column: str = PHONE_COLUMN) -> None:
        self.synonyms = synonyms or ColumnSynonyms()
        self.phone_column = phone_column

    def _is_repeated_header(self, cells: Sequence[str], columns: ColumnMap) -> bool:
        folded = tuple(_fold(cell) for cell in cells)
        if folded[: len(columns.header)] == tuple(_fold(cell) for cell in columns.header):
            return True
        if columns.reference >= len(folded):
            return False
        reference = folded[columns.reference]
        return any(reference == synonym.casefold() for synonym in self.synonyms.for_field("reference"))

    def _to_row(self, cells: list[str], columns: ColumnMap) -> AppointmentRow:
        width = len(columns.header)
        if len(cells) > width:
            if any(cell.strip() for cell in cells[width:]):
                raise ParsingError(f"row has {len(cells)} fields, header has {width}")
            cells = cells[:width]
        elif len(cells) < width:
            cells = cells + [""] * (width - len(cells))
        return AppointmentRow(values=tuple(cells), columns=columns)

    def parse(self, text: str) -> ConsolidationResult:
        """Locate the header and turn data lines into rows; phones are left empty."""
        result = ConsolidationResult(columns=None)
        columns: ColumnMap | None = None
        for line_no, cells in enumerate(read_rows(text), start=1):
            if columns is None:
                columns = resolve_columns(cells, self.synonyms, self.phone_column)
                if columns is None:
                    logger.debug("Discarding line %s before header", line_no)
                else:
                    result.columns = columns
                continue
            if self._is_repeated_header(cells, columns):
                result.repeated_headers += 1
                logger.debug("Dropping repeated header at line %s", line_no)
                continue
            try:
                row = self._to_row(cells, columns)
            except ParsingError as exc:
                result.skipped_rows += 1
                logger.warning("Skipping line %s: %s", line_no, exc)
                continue
            existing = ""
            if columns.phone_number is not None:
                existing = row.values[columns.phone_number].strip()
            result.rows.append(ConsolidatedRow(row=row, phone_number=existing))

        if columns is None:
            logger.warning("No header with a reference column found; nothing to consolidate")
        return result

    @staticmethod
    def _has_phone(item: ConsolidatedRow) -> bool:
        return bool(item.phone_number or item.row.export_phone)

    def references_needing_phone(self, text: str) -> list[str]:
        """References, in row order and without repeats, whose rows carry no phone.

        Rows with a blank reference cannot be looked up and are left out.
        """
        parsed = self.parse(text)
        needed: list[str] = []
        for item in parsed.rows:
            reference = item.row.reference
            if reference and not self._has_phone(item) and reference not in needed:
                needed.append(reference)
        return needed

    def consolidate(self, text: str, directory: PhoneDirectory) -> ConsolidationResult:
        parsed = self.parse(text)
        rows: list[ConsolidatedRow] = []
        for item in parsed.rows:
            if item.phone_number:
                rows.append(item)
                continue
            phone = item.row.export_phone
            if not phone and item.row.reference:
                phone = directory.get(item.row.reference, "")
            rows.append(ConsolidatedRow(row=item.row, phone_number=phone))
        parsed.rows = rows
        return parsed

    def write(self, result: ConsolidationResult, path: Path | str) -> Path:
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with out_path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
            writer.writerows(result.output_rows())
        logger.info("Wrote %s consolidated rows to %s", len(result.rows), out_path)
        return out_path
