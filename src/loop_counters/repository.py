"""DynamoDB repository for counter shards."""

import logging
from collections.abc import Mapping
from typing import Any

import aioboto3  # type: ignore[import-untyped]
from botocore.exceptions import ClientError

from . import schema
from .exceptions import BatchTooLargeError, DocumentExistsError, DocumentNotFoundError
from .models import DocumentLocation, ShardRecord, StoreCapabilities
from .naming import validate_table_name
from .store_protocol import WriteMode

logger = logging.getLogger(__name__)

# TransactWriteItems limit
MAX_TRANSACTION_ITEMS = 100

ATTR_PARENT_PATH = "parent_path"
ATTR_FAMILY = "family"
ATTR_SHARD_INDEX = "shard_index"


class DynamoBatch:
    """Batch of shard puts committed with a single TransactWriteItems call."""

    def __init__(self, repository: "Repository") -> None:
        self._repository = repository
        self._items: list[dict[str, Any]] = []

    def set(self, location: DocumentLocation, fields: Mapping[str, Any]) -> None:
        """Queue a create-or-replace write."""
        self._items.append(
            {
                "Put": {
                    "TableName": self._repository.table_name,
                    "Item": self._repository.build_item(location, fields),
                }
            }
        )

    def __len__(self) -> int:
        return len(self._items)

    async def commit(self) -> None:
        """Write all queued items in one transaction (all-or-nothing)."""
        if not self._items:
            return
        if len(self._items) > MAX_TRANSACTION_ITEMS:
            raise BatchTooLargeError(len(self._items), MAX_TRANSACTION_ITEMS)
        await self._repository.transact_write(self._items)


class Repository:
    """
    Async DynamoDB repository for counter shards.

    Implements DocumentStoreProtocol on a single table keyed by
    ``PK = PARENT#<parent_path>`` and ``SK = #SHARD#<family>#<index>``.
    Counter fields are stored as top-level ``C#<field>`` attributes so
    that ``UpdateItem ... ADD`` can create-or-increment them atomically.
    """

    def __init__(
        self,
        table_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        validate_table_name(table_name)
        self.table_name = table_name
        self.region = region
        self.endpoint_url = endpoint_url
        self._session: aioboto3.Session | None = None
        self._client: Any = None

    @property
    def capabilities(self) -> StoreCapabilities:
        """DynamoDB supports ADD-with-create, conditional puts, and transactions."""
        return StoreCapabilities(
            supports_atomic_upsert=True,
            supports_conditional_create=True,
            atomic_batches=True,
            max_batch_size=MAX_TRANSACTION_ITEMS,
        )

    async def _get_client(self) -> Any:
        """Get or create the DynamoDB client."""
        if self._client is None:
            self._session = aioboto3.Session()
            self._client = await self._session.client(
                "dynamodb",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
            ).__aenter__()
        return self._client

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            await self._client.__aexit__(None, None, None)
            self._client = None
            self._session = None

    async def __aenter__(self) -> "Repository":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Table operations
    # -------------------------------------------------------------------------

    async def create_table(self) -> None:
        """Create the DynamoDB table if it doesn't exist."""
        client = await self._get_client()
        definition = schema.get_table_definition(self.table_name)

        try:
            await client.create_table(**definition)
            # Wait for table to be active
            waiter = client.get_waiter("table_exists")
            await waiter.wait(TableName=self.table_name)
            logger.info("Created table %s", self.table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceInUseException":
                raise

    async def delete_table(self) -> None:
        """Delete the DynamoDB table."""
        client = await self._get_client()
        try:
            await client.delete_table(TableName=self.table_name)
            logger.info("Deleted table %s", self.table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise

    # -------------------------------------------------------------------------
    # Single-document operations
    # -------------------------------------------------------------------------

    async def read(self, location: DocumentLocation) -> ShardRecord | None:
        """Read one shard or descriptor record."""
        client = await self._get_client()

        response = await client.get_item(
            TableName=self.table_name,
            Key=self._key(location),
            ConsistentRead=True,
        )

        item = response.get("Item")
        if not item:
            return None

        return ShardRecord(location=location, fields=self._deserialize_fields(item))

    async def write(
        self,
        location: DocumentLocation,
        fields: Mapping[str, Any],
        mode: WriteMode = WriteMode.OVERWRITE,
    ) -> None:
        """
        Put one record with exactly the given fields.

        Raises:
            DocumentExistsError: If mode is CREATE and the record exists
        """
        client = await self._get_client()

        put_args: dict[str, Any] = {
            "TableName": self.table_name,
            "Item": self.build_item(location, fields),
        }
        if mode is WriteMode.CREATE:
            put_args["ConditionExpression"] = "attribute_not_exists(PK)"

        try:
            await client.put_item(**put_args)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DocumentExistsError(location) from e
            raise

    async def increment_field(
        self,
        location: DocumentLocation,
        field: str,
        delta: int,
        create_if_absent: bool = False,
    ) -> None:
        """
        Atomically add ``delta`` to one counter attribute.

        ``ADD`` treats a missing attribute as 0 and creates a missing item,
        so with ``create_if_absent`` this is a single create-or-increment.
        Without it, the update is conditioned on the item existing.

        Raises:
            DocumentNotFoundError: If the record is missing and
                create_if_absent is False
        """
        client = await self._get_client()

        names = {
            "#f": schema.field_attr(field),
            "#parent": ATTR_PARENT_PATH,
            "#family": ATTR_FAMILY,
        }
        values: dict[str, Any] = {
            ":delta": {"N": str(delta)},
            ":parent": {"S": location.parent_path},
            ":family": {"S": location.family},
        }
        set_clauses = ["#parent = :parent", "#family = :family"]
        if location.index is not None:
            names["#index"] = ATTR_SHARD_INDEX
            values[":index"] = {"N": str(location.index)}
            set_clauses.append("#index = :index")

        update_args: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": self._key(location),
            "UpdateExpression": f"ADD #f :delta SET {', '.join(set_clauses)}",
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }
        if not create_if_absent:
            update_args["ConditionExpression"] = "attribute_exists(PK)"

        try:
            await client.update_item(**update_args)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                raise DocumentNotFoundError(location) from e
            raise

    # -------------------------------------------------------------------------
    # Batch writes
    # -------------------------------------------------------------------------

    def batch(self) -> DynamoBatch:
        """Start a new transactional batch."""
        return DynamoBatch(self)

    async def transact_write(self, items: list[dict[str, Any]]) -> None:
        """Execute a transactional write."""
        if not items:
            return

        client = await self._get_client()
        await client.transact_write_items(TransactItems=items)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query(self, parent_path: str, family: str) -> list[ShardRecord]:
        """Get all shard records of a family under a parent."""
        client = await self._get_client()

        query_args: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": "PK = :pk AND begins_with(SK, :sk_prefix)",
            "ExpressionAttributeValues": {
                ":pk": {"S": schema.pk_parent(parent_path)},
                ":sk_prefix": {"S": schema.sk_shard_prefix(family)},
            },
            "ConsistentRead": True,
        }

        records = []
        while True:
            response = await client.query(**query_args)
            for item in response.get("Items", []):
                records.append(self._deserialize_record(item))

            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            query_args["ExclusiveStartKey"] = last_key

        return records

    # -------------------------------------------------------------------------
    # Serialization helpers
    # -------------------------------------------------------------------------

    def _key(self, location: DocumentLocation) -> dict[str, Any]:
        return {"PK": {"S": location.pk}, "SK": {"S": location.sk}}

    def build_item(self, location: DocumentLocation, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Build a full DynamoDB item for a record."""
        item: dict[str, Any] = {
            **self._key(location),
            ATTR_PARENT_PATH: {"S": location.parent_path},
            ATTR_FAMILY: {"S": location.family},
        }
        if location.index is not None:
            item[ATTR_SHARD_INDEX] = {"N": str(location.index)}
        for name, value in fields.items():
            item[schema.field_attr(name)] = self._serialize_value(value)
        return item

    def _deserialize_record(self, item: dict[str, Any]) -> ShardRecord:
        """Deserialize a DynamoDB item to ShardRecord."""
        location = schema.location_from_keys(item["PK"]["S"], item["SK"]["S"])
        return ShardRecord(location=location, fields=self._deserialize_fields(item))

    def _deserialize_fields(self, item: dict[str, Any]) -> dict[str, Any]:
        """Extract counter fields (``C#`` attributes) from an item."""
        fields = {}
        for attr, value in item.items():
            name = schema.parse_field_attr(attr)
            if name is not None:
                fields[name] = self._deserialize_value(value)
        return fields

    def _serialize_map(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Serialize a Python dict to DynamoDB map format."""
        return {key: self._serialize_value(value) for key, value in data.items()}

    def _serialize_value(self, value: Any) -> dict[str, Any]:
        """Serialize a single value to DynamoDB format."""
        if isinstance(value, str):
            return {"S": value}
        elif isinstance(value, bool):
            return {"BOOL": value}
        elif isinstance(value, (int, float)):
            return {"N": str(value)}
        elif isinstance(value, Mapping):
            return {"M": self._serialize_map(value)}
        elif isinstance(value, (list, tuple)):
            return {"L": [self._serialize_value(v) for v in value]}
        elif value is None:
            return {"NULL": True}
        return {"S": str(value)}

    def _deserialize_map(self, data: dict[str, Any]) -> dict[str, Any]:
        """Deserialize a DynamoDB map to Python dict."""
        return {key: self._deserialize_value(value) for key, value in data.items()}

    def _deserialize_value(self, value: dict[str, Any]) -> Any:
        """Deserialize a single DynamoDB value."""
        if "S" in value:
            return value["S"]
        elif "N" in value:
            num_str = value["N"]
            if "." in num_str or "e" in num_str.lower():
                return float(num_str)
            return int(num_str)
        elif "BOOL" in value:
            return value["BOOL"]
        elif "M" in value:
            return self._deserialize_map(value["M"])
        elif "L" in value:
            return [self._deserialize_value(v) for v in value["L"]]
        elif "NULL" in value:
            return None
        return None
