"""File parsers for spreadsheet imports using pandas."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from io import BytesIO
from typing import Any
from zipfile import BadZipFile

import numpy as np
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from app.imports.converters import CellValue

logger = logging.getLogger(__name__)


class ImportFormat(str, Enum):
    """Supported import formats."""

    CSV = "csv"
    TSV = "tsv"
    XLSX = "xlsx"
    UNKNOWN = "unknown"


EXTENSION_FORMATS = {
    ".csv": ImportFormat.CSV,
    ".tsv": ImportFormat.TSV,
    ".xlsx": ImportFormat.XLSX,
    ".xlsm": ImportFormat.XLSX,
}


class FileRejectedError(ValueError):
    """The uploaded file cannot be imported at all."""


@dataclass
class ParsedSheet:
    """Header row plus the data rows beneath it."""

    headers: list[str]
    rows: list[list[CellValue]] = field(default_factory=list)


def normalize_cell(value: Any) -> CellValue:
    """Convert a pandas/numpy cell into a plain ``CellValue``."""
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return None
        value = float(value)
        return int(value) if value.is_integer() else value
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        return value.to_pydatetime()
    if isinstance(value, (datetime, date)):
        return value
    if isinstance(value, str):
        return value.strip()
    if pd.isna(value):
        return None
    return str(value).strip()


def is_empty_row(row: list[CellValue]) -> bool:
    """True when every cell is missing or blank."""
    return all(cell is None or cell == "" for cell in row)


class FileParser(ABC):
    """Abstract base class for file parsers."""

    @abstractmethod
    def read_frame(self, file_content: bytes) -> pd.DataFrame:
        """Read the raw sheet with no header inference."""

    def parse(self, file_content: bytes) -> ParsedSheet:
        """Parse file into a header row and non-empty data rows."""
        try:
            df = self.read_frame(file_content)
        except pd.errors.EmptyDataError:
            return ParsedSheet(headers=[])
        except (
            pd.errors.ParserError,
            BadZipFile,
            InvalidFileException,
            ValueError,
            UnicodeDecodeError,
        ) as e:
            raise FileRejectedError(f"Could not parse file: {e}") from e

        all_rows = [
            [normalize_cell(value) for value in row]
            for row in df.itertuples(index=False, name=None)
        ]
        if not all_rows:
            return ParsedSheet(headers=[])

        headers = [
            "" if cell is None else str(cell).strip() for cell in all_rows[0]
        ]
        rows = [row for row in all_rows[1:] if not is_empty_row(row)]
        return ParsedSheet(headers=headers, rows=rows)


class CSVParser(FileParser):
    """CSV parser."""

    separator = ","

    def _read(self, file_content: bytes, **kwargs: Any) -> pd.DataFrame:
        return pd.read_csv(
            BytesIO(file_content),
            sep=self.separator,
            header=None,
            dtype=str,  # Keep everything as string; converters do the typing
            na_values=[],
            keep_default_na=False,
            encoding_errors="replace",
            **kwargs,
        )

    def read_frame(self, file_content: bytes) -> pd.DataFrame:
        width = len(self._read(file_content, nrows=1).columns)

        def trim(line: list[str]) -> list[str]:
            logger.warning(
                f"Row has {len(line)} cells but the header has {width}; "
                "dropping the extra cells"
            )
            return line[:width]

        # Rows longer than the header are trimmed instead of failing the file
        return self._read(file_content, engine="python", on_bad_lines=trim)


class TSVParser(CSVParser):
    """TSV parser."""

    separator = "\t"


class XLSXParser(FileParser):
    """Excel XLSX parser; reads the first sheet only."""

    def read_frame(self, file_content: bytes) -> pd.DataFrame:
        return pd.read_excel(
            BytesIO(file_content),
            sheet_name=0,
            header=None,
            dtype=object,
            engine="openpyxl",
        )


def detect_file_format(filename: str) -> ImportFormat:
    """Detect file format from the filename extension."""
    lowered = filename.lower()
    for extension, format_type in EXTENSION_FORMATS.items():
        if lowered.endswith(extension):
            return format_type
    return ImportFormat.UNKNOWN


def get_parser(format_type: ImportFormat) -> FileParser:
    """Get appropriate parser for format."""
    parsers = {
        ImportFormat.CSV: CSVParser(),
        ImportFormat.TSV: TSVParser(),
        ImportFormat.XLSX: XLSXParser(),
    }
    if format_type not in parsers:
        raise FileRejectedError(f"No parser for format: {format_type.value}")
    return parsers[format_type]


def parse_file(file_content: bytes, filename: str) -> ParsedSheet:
    """Parse an uploaded file, rejecting unsupported extensions up front."""
    format_type = detect_file_format(filename)
    if format_type == ImportFormat.UNKNOWN:
        raise FileRejectedError(f"Unsupported file format: {filename}")
    return get_parser(format_type).parse(file_content)
