"""Existence probing: which incoming keys already have stored records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from app.common.store import RecordStore, chunked
from app.core.config import STORE_BATCH_CEILING
from app.core.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass
class ProbeResult:
    """Existing records by key, plus keys whose state could not be read."""

    existing: dict[str, dict[str, Any]] = field(default_factory=dict)
    unresolved: dict[str, str] = field(default_factory=dict)  # key -> reason


def _get_individually(store: RecordStore, keys: list[str], result: ProbeResult) -> None:
    for key in keys:
        try:
            record = store.get(key)
        except StoreError as e:
            logger.warning(f"Could not read existing record {key}: {e.reason}")
            result.unresolved[key] = e.reason
            continue
        if record is not None:
            result.existing[key] = record


def probe_existing(
    store: RecordStore, keys: list[str], batch_size: int = STORE_BATCH_CEILING
) -> ProbeResult:
    """
    Look up existing records for a list of keys.

    Keys are read in chunks of at most ``batch_size``. When a chunk's batch
    read fails, or the store leaves keys unprocessed, those keys are read one
    by one. A key that still cannot be read is reported as unresolved rather
    than assumed new.

    Args:
        store: Record store for the collection
        keys: Distinct primary keys from the import file
        batch_size: Keys per batch read (never above the store ceiling)

    Returns:
        ProbeResult with the key -> record lookup and unresolved keys
    """
    batch_size = min(batch_size, STORE_BATCH_CEILING)
    result = ProbeResult()

    for chunk in chunked(keys, batch_size):
        try:
            outcome = store.batch_get(chunk)
        except StoreError as e:
            logger.warning(
                f"Batch read of {len(chunk)} keys failed ({e.reason}); "
                "falling back to individual reads"
            )
            _get_individually(store, chunk, result)
            continue

        result.existing.update(outcome.found)
        if outcome.unprocessed:
            logger.info(
                f"Store left {len(outcome.unprocessed)} keys unprocessed; "
                "reading them individually"
            )
            _get_individually(store, outcome.unprocessed, result)

    return result
