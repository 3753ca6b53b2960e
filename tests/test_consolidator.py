from __future__ import annotations

import csv
from pathlib import Path

from conftest import SAMPLE_EXPORT

from reminder_ops.domain.models import PHONE_NOT_FOUND
from reminder_ops.processing.consolidator import PHONE_COLUMN, CsvConsolidator


def _read(path: Path) -> list[list[str]]:
    with path.open(encoding="utf-8", newline="") as handle:
        return list(csv.reader(handle))


def test_header_gets_phone_column_and_rows_keep_order(tmp_path: Path) -> None:
    consolidator = CsvConsolidator()
    result = consolidator.consolidate(SAMPLE_EXPORT, {"R1": "351912345678", "R2": PHONE_NOT_FOUND})
    out = consolidator.write(result, tmp_path / "appointments.csv")

    rows = _read(out)
    assert rows[0][-1] == PHONE_COLUMN
    assert [row[0] for row in rows[1:]] == ["R1", "R2"]
    assert rows[1][-1] == "351912345678"
    assert rows[2][-1] == PHONE_NOT_FOUND
    assert out.read_text(encoding="utf-8").splitlines()[1].endswith('"351912345678"')


def test_every_row_has_a_phone_field_even_without_lookup() -> None:
    result = CsvConsolidator().consolidate(SAMPLE_EXPORT, {})

    assert [item.phone_number for item in result.rows] == ["", ""]
    assert all(len(row) == 7 for row in result.output_rows())


def test_preamble_and_repeated_headers_are_dropped() -> None:
    text = (
        "Appointments report\n"
        '"Referência","Cliente","Horário"\n'
        '"R1","Ana","09:00"\n'
        '"Referência","Cliente","Horário"\n'
        '"R2","Rui","10:00"\n'
    )
    result = CsvConsolidator().consolidate(text, {"R1": "1", "R2": "2"})

    assert [item.row.reference for item in result.rows] == ["R1", "R2"]
    assert result.repeated_headers == 1


def test_missing_reference_header_degenerates_to_no_op(tmp_path: Path) -> None:
    consolidator = CsvConsolidator()
    result = consolidator.consolidate('"Cliente","Horário"\n"Ana","09:00"\n', {})
    out = consolidator.write(result, tmp_path / "empty.csv")

    assert result.columns is None
    assert result.rows == []
    assert out.read_text(encoding="utf-8") == ""


def test_row_without_reference_is_kept_but_never_looked_up(tmp_path: Path) -> None:
    text = (
        '"Referência","Cliente","Horário"\n'
        '"R1","Ana","09:00"\n'
        '"","Rui","10:00"\n'
        '"R3","Eva","11:00"\n'
    )
    consolidator = CsvConsolidator()

    assert consolidator.references_needing_phone(text) == ["R1", "R3"]
    result = consolidator.consolidate(text, {"R1": "911", "": "should not match", "R3": "933"})
    out = consolidator.write(result, tmp_path / "appointments.csv")

    rows = _read(out)
    assert len(rows) == 4
    assert [row[1] for row in rows[1:]] == ["Ana", "Rui", "Eva"]
    assert rows[2] == ["", "Rui", "10:00", ""]
    assert result.skipped_rows == 0


def test_rows_with_extra_fields_are_skipped_and_short_rows_padded() -> None:
    text = (
        '"Referência","Cliente","Horário"\n'
        '"R2","Rui","10:00","unexpected"\n'
        '"R3","Eva"\n'
    )
    result = CsvConsolidator().consolidate(text, {})

    assert [item.row.reference for item in result.rows] == ["R3"]
    assert result.rows[0].row.values == ("R3", "Eva", "")
    assert result.skipped_rows == 1


def test_export_phone_column_takes_precedence_over_lookup() -> None:
    text = (
        '"Ref #","Client","Mobile phone","Time"\n'
        '"A1","Ana","+351 911 111 111","09:00"\n'
        '"A2","Rui","","10:00"\n'
    )
    consolidator = CsvConsolidator()

    assert consolidator.references_needing_phone(text) == ["A2"]
    result = consolidator.consolidate(text, {"A1": "ignored", "A2": "+351 922 222 222"})
    assert [item.phone_number for item in result.rows] == ["+351 911 111 111", "+351 922 222 222"]


def test_references_needing_phone_are_unique_and_ordered() -> None:
    text = (
        '"Referência","Cliente"\n'
        '"R2","Ana"\n'
        '"R1","Rui"\n'
        '"R2","Ana"\n'
    )
    assert CsvConsolidator().references_needing_phone(text) == ["R2", "R1"]


def test_consolidation_is_idempotent(tmp_path: Path) -> None:
    consolidator = CsvConsolidator()
    first = consolidator.write(
        consolidator.consolidate(SAMPLE_EXPORT, {"R1": "351912345678", "R2": "351912345678"}),
        tmp_path / "first.csv",
    )
    first_text = first.read_text(encoding="utf-8")

    assert consolidator.references_needing_phone(first_text) == []
    second = consolidator.write(
        consolidator.consolidate(first_text, {"R1": "000", "R2": "000"}),
        tmp_path / "second.csv",
    )

    assert second.read_text(encoding="utf-8") == first_text
    assert _read(second)[0].count(PHONE_COLUMN) == 1


def test_rerun_fills_only_rows_left_empty(tmp_path: Path) -> None:
    consolidator = CsvConsolidator()
    partial = consolidator.consolidate(SAMPLE_EXPORT, {"R1": "351912345678"})
    text = consolidator.write(partial, tmp_path / "partial.csv").read_text(encoding="utf-8")

    assert consolidator.references_needing_phone(text) == ["R2"]
    rerun = consolidator.consolidate(text, {"R1": "999", "R2": "351933333333"})
    assert [item.phone_number for item in rerun.rows] == ["351912345678", "351933333333"]


def test_byte_order_mark_is_ignored() -> None:
    result = CsvConsolidator().consolidate("\ufeff" + SAMPLE_EXPORT, {})
    assert result.columns is not None
    assert result.columns.header[0] == "Referência"
