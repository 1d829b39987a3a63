"""Chunked batch writes with individual retry of unprocessed items."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from app.common.store import ExpectedState, RecordStore, chunked
from app.core.config import STORE_BATCH_CEILING
from app.core.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass
class PendingWrite:
    """A reconciled record waiting to be written."""

    row_number: int
    key: str
    record: dict[str, Any]
    is_new: bool
    expected: Optional[ExpectedState] = None


@dataclass
class ImportTally:
    """Running counters and error messages for one import run."""

    processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)

    def count_pending(self, write: PendingWrite) -> None:
        """Count a record as processed before it is written."""
        self.processed += 1
        if write.is_new:
            self.inserted += 1
        else:
            self.updated += 1

    def count_failure(self, write: PendingWrite, reason: str) -> None:
        """Undo the counts for a record that was not written."""
        self.processed -= 1
        if write.is_new:
            self.inserted -= 1
        else:
            self.updated -= 1
        self.errors.append(f"{write.key}: {reason}")

    def add_row_error(self, row_number: int, reason: str) -> None:
        self.errors.append(f"Row {row_number}: {reason}")

    def add_key_error(self, key: str, reason: str) -> None:
        self.errors.append(f"{key}: {reason}")


class BatchWriter:
    """Write reconciled records in store-sized chunks."""

    def __init__(
        self,
        store: RecordStore,
        batch_size: int = STORE_BATCH_CEILING,
        conditional: bool = False,
    ):
        self.store = store
        self.batch_size = min(batch_size, STORE_BATCH_CEILING)
        self.conditional = conditional

    def write(self, writes: list[PendingWrite], tally: ImportTally) -> ImportTally:
        """
        Write all pending records and return the updated tally.

        Each chunk goes out as one batch write. Items the store reports as
        unprocessed, or every item of a chunk whose batch call fails, get one
        individual put. A record whose put also fails is removed from the
        counts and reported as an error.

        In conditional mode every record is written with its own conditional
        put so a concurrent change to the same key is detected.
        """
        if self.conditional:
            for write in writes:
                self._put_one(write, tally, write.expected)
            return tally

        for chunk in chunked(writes, self.batch_size):
            self._write_chunk(chunk, tally)
        return tally

    def _write_chunk(self, chunk: list[PendingWrite], tally: ImportTally) -> None:
        by_key = {write.key: write for write in chunk}
        try:
            outcome = self.store.batch_write([write.record for write in chunk])
        except StoreError as e:
            logger.warning(
                f"Batch write of {len(chunk)} records failed ({e.reason}); "
                "retrying each record individually"
            )
            retry = chunk
        else:
            retry = [by_key[key] for key in outcome.rejected if key in by_key]
            if retry:
                logger.info(
                    f"Store left {len(retry)} of {len(chunk)} records unprocessed; "
                    "retrying individually"
                )

        for write in retry:
            self._put_one(write, tally)

    def _put_one(
        self,
        write: PendingWrite,
        tally: ImportTally,
        expected: Optional[ExpectedState] = None,
    ) -> None:
        try:
            self.store.put(write.record, expected)
        except StoreError as e:
            logger.error(f"Write of {write.key} failed: {e.reason}")
            tally.count_failure(write, e.reason)
