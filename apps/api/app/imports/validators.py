"""Validation rules for import rows."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ValidationResult:
    """Outcome of validating one field."""

    valid: bool
    error: Optional[str] = None


def validate_required(record: dict[str, Any], field_name: str) -> ValidationResult:
    """Validate that a required field is present and not blank."""
    value = record.get(field_name)
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return ValidationResult(valid=False, error=f"Missing {field_name}")
    return ValidationResult(valid=True)
