"""Field contracts for the importable collections (students, teachers, games)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from app.core.errors import NotFoundError
from app.imports.converters import CONVERTERS, to_date_string, to_string


@dataclass(frozen=True)
class FieldSpec:
    """One attribute of a collection record.

    ``protected`` attributes keep their stored value on update.
    ``auto_now`` attributes are stamped with the write time on every import.
    ``fallback_now`` date attributes use the current time when the cell is
    missing or invalid.
    """

    name: str
    kind: str = "string"
    protected: bool = False
    auto_now: bool = False
    fallback_now: bool = False


@dataclass(frozen=True)
class CollectionSchema:
    """Import and export contract for one collection."""

    name: str
    key_field: str
    fields: tuple[FieldSpec, ...]
    sheet_name: str
    export_columns: tuple[str, ...]
    column_widths: tuple[int, ...]
    sort_fields: tuple[str, ...]
    filter_field: Optional[str] = None
    table_setting: str = ""

    @property
    def field_names(self) -> list[str]:
        return [self.key_field] + [spec.name for spec in self.fields]

    @property
    def protected_fields(self) -> list[FieldSpec]:
        return [spec for spec in self.fields if spec.protected]


class UnknownCollectionError(NotFoundError):
    """Requested collection does not exist."""

    def __init__(self, name: str):
        super().__init__("Collection", name)


STUDENTS = CollectionSchema(
    name="students",
    key_field="student_id",
    fields=(
        FieldSpec("name_1"),
        FieldSpec("name_2"),
        FieldSpec("marks", "number"),
        FieldSpec("class"),
        FieldSpec("class_no"),
        FieldSpec("last_login", "date", fallback_now=True),
        FieldSpec("last_update", "date", auto_now=True),
        FieldSpec("teacher_id"),
        FieldSpec("password"),
    ),
    sheet_name="Students",
    export_columns=(
        "student_id",
        "name_1",
        "name_2",
        "marks",
        "class",
        "class_no",
        "last_login",
        "last_update",
        "teacher_id",
        "password",
    ),
    column_widths=(12, 20, 20, 8, 8, 10, 20, 20, 12, 15),
    sort_fields=("class", "class_no"),
    filter_field="class",
    table_setting="students_table_name",
)

TEACHERS = CollectionSchema(
    name="teachers",
    key_field="teacher_id",
    fields=(
        FieldSpec("name"),
        FieldSpec("password"),
        FieldSpec("responsible_class", "string_array"),
        FieldSpec("last_login", "date", fallback_now=True),
        FieldSpec("is_admin", "boolean"),
    ),
    sheet_name="Teachers",
    export_columns=(
        "teacher_id",
        "name",
        "responsible_class",
        "last_login",
        "is_admin",
        "password",
    ),
    column_widths=(12, 20, 30, 20, 10, 64),
    sort_fields=("teacher_id",),
    table_setting="teachers_table_name",
)

GAMES = CollectionSchema(
    name="games",
    key_field="game_id",
    fields=(
        FieldSpec("game_name"),
        FieldSpec("student_id"),
        FieldSpec("subject"),
        FieldSpec("difficulty"),
        FieldSpec("teacher_id"),
        FieldSpec("last_update", "date", auto_now=True),
        FieldSpec("scratch_id"),
        FieldSpec("scratch_api"),
        FieldSpec("description"),
        # Incremented by player clicks; an import never rolls it back
        FieldSpec("accumulated_click", "number", protected=True),
    ),
    sheet_name="Games",
    export_columns=(
        "game_id",
        "game_name",
        "student_id",
        "subject",
        "difficulty",
        "teacher_id",
        "last_update",
        "scratch_id",
        "scratch_api",
        "accumulated_click",
        "description",
    ),
    column_widths=(12, 30, 12, 25, 15, 12, 20, 15, 40, 15, 40),
    sort_fields=("game_id",),
    table_setting="games_table_name",
)

COLLECTIONS = {schema.name: schema for schema in (STUDENTS, TEACHERS, GAMES)}


def get_collection(name: str) -> CollectionSchema:
    """Look up a collection contract by name."""
    if name not in COLLECTIONS:
        raise UnknownCollectionError(name)
    return COLLECTIONS[name]


def convert_field(spec: FieldSpec, value: Any) -> Any:
    """Apply the converter for a field's kind."""
    if spec.kind == "date":
        return to_date_string(value, use_current_if_invalid=spec.fallback_now)
    if spec.kind not in CONVERTERS:
        raise ValueError(f"Unknown field kind: {spec.kind}")
    return CONVERTERS[spec.kind](value)


def convert_record(schema: CollectionSchema, mapped: dict[str, Any]) -> dict[str, Any]:
    """Convert a mapped row into typed attribute values.

    Auto-stamped fields are left out; the reconciler sets them.
    """
    record: dict[str, Any] = {
        schema.key_field: to_string(mapped.get(schema.key_field)).strip()
    }
    for spec in schema.fields:
        if spec.auto_now:
            continue
        record[spec.name] = convert_field(spec, mapped.get(spec.name))
    return record
