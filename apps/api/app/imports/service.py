"""Import service layer for spreadsheet imports."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional

from app.common.store import ExpectedState, RecordStore
from app.core.config import Settings, settings
from app.imports.contracts import CollectionSchema, convert_record, get_collection
from app.imports.converters import utc_now_iso
from app.imports.mappers import check_headers, map_row
from app.imports.parsers import FileRejectedError, ParsedSheet, parse_file
from app.imports.prober import probe_existing
from app.imports.reconciler import reconcile
from app.imports.schemas import ImportResult
from app.imports.validators import validate_required
from app.imports.writer import BatchWriter, ImportTally, PendingWrite

logger = logging.getLogger(__name__)


class ImportStage(str, Enum):
    """Stages of one import run."""

    PARSING = "parsing"
    VALIDATING_ROWS = "validating_rows"
    PROBING_EXISTENCE = "probing_existence"
    RECONCILING = "reconciling"
    WRITING = "writing"
    FINALIZING = "finalizing"
    REJECTED = "rejected"


class ImportService:
    """Run one spreadsheet import against a collection's store."""

    def __init__(
        self,
        store: RecordStore,
        config: Settings = settings,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def _enter(self, collection: str, stage: ImportStage, detail: str = "") -> None:
        suffix = f": {detail}" if detail else ""
        logger.info(f"Import {collection} -> {stage.value}{suffix}")

    def _reject(self, collection: str, message: str) -> ImportResult:
        self._enter(collection, ImportStage.REJECTED, message)
        return ImportResult.rejected(message)

    def import_file(self, content: bytes, filename: str, collection: str) -> ImportResult:
        """
        Import an uploaded spreadsheet into a collection.

        File-level problems reject the whole run. Row-level and write-level
        problems are collected in ``errors`` while the remaining rows are
        still written.

        Args:
            content: Raw file bytes
            filename: Original filename (its extension selects the parser)
            collection: Target collection name

        Returns:
            ImportResult with counters and error messages
        """
        schema = get_collection(collection)

        self._enter(collection, ImportStage.PARSING, filename)
        try:
            sheet = parse_file(content, filename)
        except FileRejectedError as e:
            return self._reject(collection, str(e))

        if not sheet.rows:
            return self._reject(collection, "File is empty or contains no data rows")
        limit = self.config.max_import_rows
        if len(sheet.rows) > limit:
            return self._reject(
                collection,
                f"File contains {len(sheet.rows)} records. "
                f"Maximum allowed is {limit} records.",
            )

        report = check_headers(sheet.headers, schema)
        if report.missing or report.unexpected:
            logger.warning(
                f"Import {collection} headers: missing={report.missing} "
                f"unexpected={report.unexpected}"
            )

        tally = ImportTally()

        self._enter(collection, ImportStage.VALIDATING_ROWS, f"{len(sheet.rows)} rows")
        candidates = self._validate_rows(schema, sheet, tally)

        pending: list[PendingWrite] = []
        if candidates:
            self._enter(
                collection, ImportStage.PROBING_EXISTENCE, f"{len(candidates)} keys"
            )
            probe = probe_existing(
                self.store,
                [record[schema.key_field] for _, record in candidates],
                batch_size=self.config.store_batch_size,
            )

            self._enter(collection, ImportStage.RECONCILING)
            pending = self._reconcile_rows(
                schema, candidates, probe.existing, probe.unresolved, tally
            )

        if pending:
            self._enter(collection, ImportStage.WRITING, f"{len(pending)} records")
            writer = BatchWriter(
                self.store,
                batch_size=self.config.store_batch_size,
                conditional=self.config.import_conditional_writes,
            )
            tally = writer.write(pending, tally)

        self._enter(collection, ImportStage.FINALIZING)
        return self._finalize(schema, tally)

    def _validate_rows(
        self, schema: CollectionSchema, sheet: ParsedSheet, tally: ImportTally
    ) -> list[tuple[int, dict[str, Any]]]:
        """Map and convert rows, dropping keyless rows and repeated keys."""
        key_field = schema.key_field
        first_seen: dict[str, int] = {}
        candidates: list[tuple[int, dict[str, Any]]] = []

        for row_number, row in enumerate(sheet.rows, start=1):
            mapped = map_row(sheet.headers, row)
            check = validate_required(mapped, key_field)
            if not check.valid:
                tally.add_row_error(row_number, check.error)
                continue

            record = convert_record(schema, mapped)
            key = record[key_field]
            if key in first_seen:
                tally.add_row_error(
                    row_number,
                    f"Duplicate {key_field} '{key}' (first seen in row {first_seen[key]})",
                )
                continue
            first_seen[key] = row_number
            candidates.append((row_number, record))

        return candidates

    def _reconcile_rows(
        self,
        schema: CollectionSchema,
        candidates: list[tuple[int, dict[str, Any]]],
        existing: dict[str, dict[str, Any]],
        unresolved: dict[str, str],
        tally: ImportTally,
    ) -> list[PendingWrite]:
        now = self.clock()
        conditional = self.config.import_conditional_writes
        pending: list[PendingWrite] = []

        for row_number, incoming in candidates:
            key = incoming[schema.key_field]
            if key in unresolved:
                tally.add_key_error(
                    key, f"Could not verify existing record: {unresolved[key]}"
                )
                continue

            stored = existing.get(key)
            expected: Optional[ExpectedState] = None
            if conditional:
                expected = ExpectedState(
                    exists=stored is not None,
                    version=stored.get("version") if stored is not None else None,
                )

            write = PendingWrite(
                row_number=row_number,
                key=key,
                record=reconcile(schema, incoming, stored, now, versioned=conditional),
                is_new=stored is None,
                expected=expected,
            )
            tally.count_pending(write)
            pending.append(write)

        return pending

    def _finalize(self, schema: CollectionSchema, tally: ImportTally) -> ImportResult:
        logger.info(
            f"Import {schema.name} finished: processed={tally.processed} "
            f"inserted={tally.inserted} updated={tally.updated} "
            f"errors={len(tally.errors)}"
        )
        if tally.processed == 0:
            return ImportResult(
                success=False,
                message="No records were successfully processed",
                errors=tally.errors,
            )

        message = (
            f"Successfully processed {tally.processed} {schema.name} "
            f"({tally.inserted} inserted, {tally.updated} updated)"
        )
        if tally.errors:
            message += f" with {len(tally.errors)} error(s)"
        return ImportResult(
            success=True,
            message=message,
            processed=tally.processed,
            inserted=tally.inserted,
            updated=tally.updated,
            errors=tally.errors,
        )
