"""Spreadsheet exports of collection records."""

from __future__ import annotations

import io
import logging
from datetime import date
from typing import Any, Iterable, Optional

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from app.common.store import RecordStore
from app.imports.contracts import CollectionSchema, get_collection

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def export_filename(collection: str, today: date) -> str:
    """Download filename for a collection export, e.g. ``students_2024-05-01.xlsx``."""
    return f"{collection}_{today.isoformat()}.xlsx"


def _sort_key(schema: CollectionSchema):
    def key(record: dict[str, Any]) -> tuple[str, ...]:
        return tuple(
            "" if record.get(name) is None else str(record.get(name))
            for name in schema.sort_fields
        )

    return key


def _export_value(schema: CollectionSchema, name: str, value: Any) -> Any:
    """Render one attribute for the spreadsheet."""
    spec = next((spec for spec in schema.fields if spec.name == name), None)
    if spec is None:
        return value
    if spec.kind == "string_array":
        return ", ".join(str(item) for item in value or [])
    if spec.kind == "boolean":
        return "Yes" if value else "No"
    return value


class ExportService:
    """Build xlsx exports for a collection's store."""

    def __init__(self, store: RecordStore):
        self.store = store

    def collect_rows(
        self, schema: CollectionSchema, classes: Optional[Iterable[str]] = None
    ) -> list[dict[str, Any]]:
        """Scan, filter, sort and lay out records in export column order."""
        records = self.store.scan()

        wanted = [value for value in (classes or []) if value]
        if wanted and schema.filter_field:
            records = [
                record for record in records if record.get(schema.filter_field) in wanted
            ]

        records.sort(key=_sort_key(schema))
        return [
            {
                column: _export_value(schema, column, record.get(column))
                for column in schema.export_columns
            }
            for record in records
        ]

    def export_collection(
        self, collection: str, classes: Optional[Iterable[str]] = None
    ) -> bytes:
        """
        Generate an Excel workbook with every record of a collection.

        Args:
            collection: Collection name
            classes: Optional filter values for the collection's filter field

        Returns:
            Excel file content as bytes
        """
        schema = get_collection(collection)
        rows = self.collect_rows(schema, classes)
        logger.info(f"Exporting {len(rows)} {collection}")

        df = pd.DataFrame(rows, columns=list(schema.export_columns))

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=schema.sheet_name, index=False)

            worksheet = writer.sheets[schema.sheet_name]
            for cell in worksheet[1]:
                cell.font = Font(bold=True)

            for index, width in enumerate(schema.column_widths, start=1):
                worksheet.column_dimensions[get_column_letter(index)].width = width

        buffer.seek(0)
        return buffer.read()
