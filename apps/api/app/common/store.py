"""DynamoDB-backed record store used by the import and export engines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence, TypeVar

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.errors import StoreError, VersionConflictError
from app.imports.contracts import CollectionSchema

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split items into consecutive lists of at most ``size``."""
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class BatchGetOutcome:
    """Records found by a batch read, plus keys the store did not process."""

    found: dict[str, dict[str, Any]] = field(default_factory=dict)
    unprocessed: list[str] = field(default_factory=list)


@dataclass
class WriteOutcome:
    """Per-item result of a batch write.

    A batch write call can succeed while leaving some items unwritten, so
    callers must branch on ``rejected`` rather than on the call itself.
    """

    committed: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ExpectedState:
    """Stored state a conditional put requires.

    ``exists=False`` requires the key to be absent. ``exists=True`` requires
    the stored ``version`` to equal ``version`` (or to be missing when
    ``version`` is None).
    """

    exists: bool
    version: Optional[int] = None


class RecordStore(Protocol):
    """Store operations the import/export engines depend on."""

    key_field: str

    def get(self, key: str) -> Optional[dict[str, Any]]:
        ...

    def batch_get(self, keys: list[str]) -> BatchGetOutcome:
        ...

    def batch_write(self, records: list[dict[str, Any]]) -> WriteOutcome:
        ...

    def put(
        self, record: dict[str, Any], expected: Optional[ExpectedState] = None
    ) -> None:
        ...

    def scan(self) -> list[dict[str, Any]]:
        ...


def to_store_value(value: Any) -> Any:
    """Convert Python values into types boto3 can serialize (no floats)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_store_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_store_value(v) for v in value]
    return value


def from_store_value(value: Any) -> Any:
    """Convert boto3 values back into plain Python types."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_store_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_store_value(v) for v in value]
    if isinstance(value, set):
        return sorted(from_store_value(v) for v in value)
    return value


def get_dynamodb_resource():
    """Create a DynamoDB resource from settings.

    Every call is bounded by connect/read timeouts and a fixed number of
    transport attempts so a run cannot hang on the network.
    """
    client_config = Config(
        connect_timeout=settings.store_connect_timeout_seconds,
        read_timeout=settings.store_read_timeout_seconds,
        retries={"max_attempts": settings.store_max_attempts, "mode": "standard"},
    )
    kwargs: dict[str, Any] = {
        "region_name": settings.aws_region,
        "config": client_config,
    }
    if settings.dynamodb_mode == "local":
        kwargs["endpoint_url"] = settings.dynamodb_endpoint
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
        logger.info(f"Connecting to local DynamoDB at {settings.dynamodb_endpoint}")
    else:
        logger.info(f"Connecting to AWS DynamoDB in {settings.aws_region}")
    return boto3.resource("dynamodb", **kwargs)


class DynamoTableStore:
    """Record store over one DynamoDB table keyed by a single string attribute."""

    def __init__(self, table_name: str, key_field: str, resource=None):
        """Initialize table store."""
        self.resource = resource if resource is not None else get_dynamodb_resource()
        self.table_name = table_name
        self.key_field = key_field
        self.table = self.resource.Table(table_name)

    def _fail(self, operation: str, error: Exception) -> StoreError:
        logger.error(f"DynamoDB {operation} on {self.table_name} failed: {error}")
        return StoreError(operation, str(error))

    def get(self, key: str) -> Optional[dict[str, Any]]:
        """Fetch one record by key, or None when absent."""
        try:
            response = self.table.get_item(Key={self.key_field: key})
        except (ClientError, BotoCoreError) as e:
            raise self._fail("get", e) from e
        item = response.get("Item")
        return from_store_value(item) if item is not None else None

    def batch_get(self, keys: list[str]) -> BatchGetOutcome:
        """Fetch up to one batch of records by key."""
        if not keys:
            return BatchGetOutcome()
        try:
            response = self.resource.batch_get_item(
                RequestItems={
                    self.table_name: {
                        "Keys": [{self.key_field: key} for key in keys],
                    }
                }
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("batch_get", e) from e

        outcome = BatchGetOutcome()
        for item in response.get("Responses", {}).get(self.table_name, []):
            record = from_store_value(item)
            outcome.found[record[self.key_field]] = record
        unprocessed = response.get("UnprocessedKeys", {}).get(self.table_name, {})
        outcome.unprocessed = [
            key_item[self.key_field] for key_item in unprocessed.get("Keys", [])
        ]
        return outcome

    def batch_write(self, records: list[dict[str, Any]]) -> WriteOutcome:
        """Put up to one batch of records; report which items were not written."""
        if not records:
            return WriteOutcome()
        try:
            response = self.resource.batch_write_item(
                RequestItems={
                    self.table_name: [
                        {"PutRequest": {"Item": to_store_value(record)}}
                        for record in records
                    ]
                }
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("batch_write", e) from e

        unprocessed = response.get("UnprocessedItems", {}).get(self.table_name, [])
        rejected = [
            request["PutRequest"]["Item"][self.key_field]
            for request in unprocessed
            if "PutRequest" in request
        ]
        rejected_set = set(rejected)
        committed = [
            record[self.key_field]
            for record in records
            if record[self.key_field] not in rejected_set
        ]
        return WriteOutcome(committed=committed, rejected=rejected)

    def _condition(self, expected: ExpectedState):
        if not expected.exists:
            return Attr(self.key_field).not_exists()
        if expected.version is None:
            return Attr(self.key_field).exists() & Attr("version").not_exists()
        return Attr("version").eq(expected.version)

    def put(
        self, record: dict[str, Any], expected: Optional[ExpectedState] = None
    ) -> None:
        """Put one record, conditionally when ``expected`` is given."""
        kwargs: dict[str, Any] = {"Item": to_store_value(record)}
        if expected is not None:
            kwargs["ConditionExpression"] = self._condition(expected)
        try:
            self.table.put_item(**kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == "ConditionalCheckFailedException":
                raise VersionConflictError(record[self.key_field]) from e
            raise self._fail("put", e) from e
        except BotoCoreError as e:
            raise self._fail("put", e) from e

    def scan(self) -> list[dict[str, Any]]:
        """Read every record in the table, following pagination."""
        items: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {}
        try:
            while True:
                response = self.table.scan(**kwargs)
                items.extend(from_store_value(item) for item in response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise self._fail("scan", e) from e
        return items


def get_store(schema: CollectionSchema, resource=None) -> DynamoTableStore:
    """Build the store for a collection's table."""
    table_name = getattr(settings, schema.table_setting)
    return DynamoTableStore(table_name, schema.key_field, resource=resource)


def get_store_factory() -> Callable[[CollectionSchema], RecordStore]:
    """FastAPI dependency returning the store builder used by the routes."""
    return get_store
