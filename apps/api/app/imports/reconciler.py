"""Merge incoming import records with their stored counterparts."""

from __future__ import annotations

from typing import Any, Optional

from app.imports.contracts import CollectionSchema


def reconcile(
    schema: CollectionSchema,
    incoming: dict[str, Any],
    existing: Optional[dict[str, Any]],
    now: str,
    versioned: bool = False,
) -> dict[str, Any]:
    """
    Build the record to write for one incoming row.

    Rules, in order:
        1. primary key from the incoming record
        2. plain attributes from the incoming record; auto-stamped fields get ``now``
        3. ``created_at`` carried forward from the existing record, else ``now``
        4. ``updated_at`` is always ``now``
        5. protected attributes keep the existing value; new records take the
           incoming value (0 when absent)
        6. with ``versioned``, ``version`` is the existing version plus one

    Args:
        schema: Collection contract
        incoming: Converted record from the import file
        existing: Stored record with the same key, if any
        now: Timestamp for this import run
        versioned: Whether records carry an optimistic-lock version

    Returns:
        Final record to write
    """
    key_field = schema.key_field
    record: dict[str, Any] = {key_field: incoming[key_field]}

    for spec in schema.fields:
        if spec.auto_now:
            record[spec.name] = now
        elif not spec.protected:
            record[spec.name] = incoming.get(spec.name)

    if existing is not None:
        record["created_at"] = existing.get("created_at") or now
    else:
        record["created_at"] = now
    record["updated_at"] = now

    for spec in schema.protected_fields:
        incoming_value = incoming.get(spec.name)
        if incoming_value is None:
            incoming_value = 0
        if existing is not None and existing.get(spec.name) is not None:
            record[spec.name] = existing[spec.name]
        else:
            record[spec.name] = incoming_value

    if versioned:
        current = existing.get("version", 0) if existing is not None else 0
        record["version"] = int(current or 0) + 1

    return record
