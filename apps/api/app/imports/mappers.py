"""Row mapping and header checks for imports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from app.imports.contracts import CollectionSchema
from app.imports.converters import CellValue


@dataclass
class HeaderReport:
    """Header row compared against a collection's known fields."""

    missing: list[str] = field(default_factory=list)
    unexpected: list[str] = field(default_factory=list)
    has_key_column: bool = True


def map_row(headers: Sequence[str], row: Sequence[CellValue]) -> dict[str, Any]:
    """
    Zip a header row with a data row.

    Header positions beyond the end of the row map to None; blank headers
    are skipped.

    Args:
        headers: Column names from the first row
        row: Cell values from a data row

    Returns:
        Mapping from column name to cell value
    """
    record: dict[str, Any] = {}
    for index, header in enumerate(headers):
        if not header:
            continue
        record[header] = row[index] if index < len(row) else None
    return record


def check_headers(headers: Sequence[str], schema: CollectionSchema) -> HeaderReport:
    """Compare uploaded headers with the collection's fields."""
    present = {header for header in headers if header}
    known = set(schema.field_names)
    return HeaderReport(
        missing=[name for name in schema.field_names if name not in present],
        unexpected=[header for header in headers if header and header not in known],
        has_key_column=schema.key_field in present,
    )
