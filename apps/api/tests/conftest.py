from __future__ import annotations

import copy
import csv
import io
from typing import Any, Callable, Optional

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from app.common.store import (
    BatchGetOutcome,
    ExpectedState,
    WriteOutcome,
    get_store_factory,
)
from app.core.config import STORE_BATCH_CEILING
from app.core.errors import StoreError, VersionConflictError
from app.imports.contracts import COLLECTIONS
from app.main import app


class FakeStore:
    """In-memory record store with switches for simulating store failures.

    ``unprocessed_reads`` / ``unprocessed_writes`` hold keys the batch calls
    report back as unprocessed. ``failing_gets`` / ``failing_puts`` hold keys
    whose individual calls raise. ``fail_batch_get`` / ``fail_batch_write``
    make every batch call raise.
    """

    def __init__(self, key_field: str, records: Optional[list[dict[str, Any]]] = None):
        self.key_field = key_field
        self.records: dict[str, dict[str, Any]] = {
            record[key_field]: copy.deepcopy(record) for record in records or []
        }
        self.unprocessed_reads: set[str] = set()
        self.unprocessed_writes: set[str] = set()
        self.failing_gets: set[str] = set()
        self.failing_puts: set[str] = set()
        self.fail_batch_get = False
        self.fail_batch_write = False
        self.calls: list[tuple[str, int]] = []

    def get(self, key: str) -> Optional[dict[str, Any]]:
        self.calls.append(("get", 1))
        if key in self.failing_gets:
            raise StoreError("get", "Read timeout on endpoint URL")
        record = self.records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def batch_get(self, keys: list[str]) -> BatchGetOutcome:
        assert len(keys) <= STORE_BATCH_CEILING
        self.calls.append(("batch_get", len(keys)))
        if self.fail_batch_get:
            raise StoreError("batch_get", "ProvisionedThroughputExceededException")
        outcome = BatchGetOutcome()
        for key in keys:
            if key in self.unprocessed_reads:
                outcome.unprocessed.append(key)
            elif key in self.records:
                outcome.found[key] = copy.deepcopy(self.records[key])
        return outcome

    def batch_write(self, records: list[dict[str, Any]]) -> WriteOutcome:
        assert len(records) <= STORE_BATCH_CEILING
        self.calls.append(("batch_write", len(records)))
        if self.fail_batch_write:
            raise StoreError("batch_write", "Connection reset by peer")
        outcome = WriteOutcome()
        for record in records:
            key = record[self.key_field]
            if key in self.unprocessed_writes:
                outcome.rejected.append(key)
            else:
                self.records[key] = copy.deepcopy(record)
                outcome.committed.append(key)
        return outcome

    def put(
        self, record: dict[str, Any], expected: Optional[ExpectedState] = None
    ) -> None:
        self.calls.append(("put", 1))
        key = record[self.key_field]
        if key in self.failing_puts:
            raise StoreError("put", "ProvisionedThroughputExceededException")
        if expected is not None:
            current = self.records.get(key)
            if expected.exists != (current is not None):
                raise VersionConflictError(key)
            if current is not None and current.get("version") != expected.version:
                raise VersionConflictError(key)
        self.records[key] = copy.deepcopy(record)

    def scan(self) -> list[dict[str, Any]]:
        self.calls.append(("scan", len(self.records)))
        return [copy.deepcopy(record) for record in self.records.values()]

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)


@pytest.fixture
def stores() -> dict[str, FakeStore]:
    """One empty fake store per collection."""
    return {
        name: FakeStore(schema.key_field) for name, schema in COLLECTIONS.items()
    }


@pytest.fixture
def student_store(stores) -> FakeStore:
    return stores["students"]


@pytest.fixture
def teacher_store(stores) -> FakeStore:
    return stores["teachers"]


@pytest.fixture
def game_store(stores) -> FakeStore:
    return stores["games"]


@pytest.fixture
def client(stores):
    """Test client whose routes read and write the fake stores."""
    app.dependency_overrides[get_store_factory] = lambda: (
        lambda schema: stores[schema.name]
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_csv() -> Callable[..., bytes]:
    """Build CSV bytes from a header row and data rows."""

    def build(headers: list[str], rows: list[list[Any]]) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(headers)
        writer.writerows(rows)
        return buffer.getvalue().encode("utf-8")

    return build


@pytest.fixture
def make_xlsx() -> Callable[..., bytes]:
    """Build xlsx bytes from a header row and data rows."""

    def build(headers: list[str], rows: list[list[Any]], sheet_name: str = "Sheet1") -> bytes:
        buffer = io.BytesIO()
        df = pd.DataFrame(rows, columns=headers)
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False)
        return buffer.getvalue()

    return build
