"""Type conversion for spreadsheet cell values.

Every converter takes a raw cell value and a default, branches on each member
of ``CellValue`` explicitly, and never raises.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional, Union

from dateutil import parser as date_parser

# Values a parsed spreadsheet cell can hold
CellValue = Union[None, bool, int, float, str, datetime, date]

BOOLEAN_TRUE = {"true", "1", "yes"}
BOOLEAN_FALSE = {"false", "0", "no"}


def _format_iso(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current timestamp in the format stored on every record."""
    return _format_iso(datetime.now(timezone.utc))


def to_string(value: Any, default: str = "") -> str:
    """Coerce value to string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, datetime):
        try:
            return _format_iso(value)
        except OverflowError:
            # Shifting to UTC leaves the supported year range
            return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return str(value)


def to_number(value: Any, default: Union[int, float] = 0) -> Union[int, float]:
    """
    Coerce value to a number.

    Integral results come back as ``int`` so that ``"85"`` and ``85.0`` both
    store as ``85``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return default
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        str_value = value.strip()
        if str_value == "":
            return default
        try:
            parsed = float(str_value)
        except ValueError:
            return default
        if not math.isfinite(parsed):
            return default
        return int(parsed) if parsed.is_integer() else parsed
    # datetime, date, lists
    return default


def to_boolean(value: Any, default: bool = False) -> bool:
    """
    Coerce value to boolean.

    Recognized false strings ("false", "0", "no") give False even when
    ``default`` is True; only unrecognized values fall back to the default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return default
        return value != 0
    if isinstance(value, str):
        str_value = value.strip().lower()
        if str_value in BOOLEAN_TRUE:
            return True
        if str_value in BOOLEAN_FALSE:
            return False
        return default
    return default


def to_string_array(value: Any, default: Optional[list[str]] = None) -> list[str]:
    """
    Coerce value to a list of strings.

    Accepts a JSON array string (``'["1A", "2B"]'``), an existing list, or a
    bare scalar. Malformed JSON becomes a one-element list holding the raw
    string.
    """
    if default is None:
        default = []
    if value is None:
        return list(default)
    if isinstance(value, (list, tuple)):
        return [to_string(item) for item in value]
    if isinstance(value, str):
        if value.strip() == "":
            return list(default)
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        if isinstance(parsed, list):
            return [to_string(item) for item in parsed]
        if isinstance(parsed, str):
            return [parsed]
        return [value]
    return [to_string(value)]


def _parse_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        str_value = value.strip()
        if not str_value:
            return None
        try:
            return date_parser.isoparse(str_value)
        except (ValueError, OverflowError):
            pass
        try:
            return date_parser.parse(str_value)
        except (ValueError, OverflowError):
            return None
    # None, bool, numbers
    return None


def to_date_string(value: Any, use_current_if_invalid: bool = True) -> str:
    """
    Coerce value to an ISO timestamp string.

    Invalid or missing input gives the current timestamp when
    ``use_current_if_invalid`` is set; otherwise the raw input is returned as
    a string (``""`` for a missing value).
    """
    parsed = _parse_date(value)
    if parsed is not None:
        try:
            return _format_iso(parsed)
        except OverflowError:
            pass
    if use_current_if_invalid:
        return utc_now_iso()
    if value is None:
        return ""
    return to_string(value)


CONVERTERS = {
    "string": to_string,
    "number": to_number,
    "boolean": to_boolean,
    "string_array": to_string_array,
    "date": to_date_string,
}
