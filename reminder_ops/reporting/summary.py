"""Run summary aggregated from enrichment and grouping records."""

from __future__ import annotations

from collections import Counter
from typing import Any


def compute_summary(
    *,
    exported_rows: int,
    enrichment_records: list[dict[str, Any]],
    grouping_records: list[dict[str, Any]],
    contacts: int,
    skipped_rows: int = 0,
) -> dict[str, Any]:
    """Compute aggregate counters for one run."""
    enrichment = Counter(record.get("status") for record in enrichment_records)
    skipped_reasons = Counter(
        record.get("reason", "unknown")
        for record in grouping_records
        if record.get("status") == "skipped"
    )

    return {
        "exported_rows": exported_rows,
        "unparseable_rows": skipped_rows,
        "enrichment": {
            "attempted": len(enrichment_records),
            "enriched": enrichment.get("enriched", 0),
            "not_found": enrichment.get("not_found", 0),
            "failed": enrichment.get("failed", 0),
        },
        "grouped_rows": sum(1 for record in grouping_records if record.get("status") == "grouped"),
        "skipped": {
            "total": sum(skipped_reasons.values()),
            "reasons": dict(skipped_reasons),
        },
        "contacts": contacts,
    }
