# src/polistore/storage/backends/dynamodb.py
"""
DynamoDB indexed backend.

The table has partition key ``id`` (S) and sort key ``page`` (S). Every
secondary index named in ``polistore.schema.SecondaryIndex`` is a GSI with
the index's partition attribute as hash key and its derived attribute as
range key. Composite-key records use the same two table attributes.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from ...config import IndexedTierConfig
from ..base import IndexQuery, IndexQueryResult
from .aws import make_client, translate_error

logger = logging.getLogger(__name__)


def _to_dynamo(value: Any) -> Any:
    """Floats are not accepted by the serializer; send them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_from_dynamo(v) for v in value]
    return value


class DynamoDBIndexedBackend:
    """Indexed backend on a DynamoDB table, via the low-level boto3 client."""

    name = "dynamodb"

    def __init__(
        self,
        table_name: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        client: Any = None,
    ):
        self.table_name = table_name
        self._client = client or make_client("dynamodb", region=region, endpoint_url=endpoint_url)
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        logger.debug(f"DynamoDBIndexedBackend initialized (table={table_name}, endpoint={endpoint_url})")

    @classmethod
    def from_config(cls, config: IndexedTierConfig) -> "DynamoDBIndexedBackend":
        return cls(config.table_name, region=config.region, endpoint_url=config.endpoint_url)

    def _serialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(_to_dynamo(v)) for k, v in item.items()}

    def _deserialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {k: _from_dynamo(self._deserializer.deserialize(v)) for k, v in item.items()}

    @staticmethod
    def _key(key: tuple[str, str]) -> dict[str, Any]:
        return {"id": {"S": key[0]}, "page": {"S": key[1]}}

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        try:
            return getattr(self._client, operation)(TableName=self.table_name, **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(self.name, operation, e) from e

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def put_item(self, item: dict[str, Any]) -> None:
        self._call("put_item", Item=self._serialize(item))

    def get_item(self, key: tuple[str, str]) -> dict[str, Any] | None:
        response = self._call("get_item", Key=self._key(key), ConsistentRead=True)
        item = response.get("Item")
        return self._deserialize(item) if item else None

    def _query_partition(self, item_id: str, names: dict[str, str] | None = None, **extra: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        start_key = None
        while True:
            kwargs: dict[str, Any] = dict(
                KeyConditionExpression="#id = :id",
                ExpressionAttributeNames={"#id": "id", **(names or {})},
                ExpressionAttributeValues={":id": {"S": item_id}},
                ConsistentRead=True,
                **extra,
            )
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            response = self._call("query", **kwargs)
            items.extend(response.get("Items", []))
            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                return items

    def get_pages(self, item_id: str) -> list[dict[str, Any]]:
        return [self._deserialize(item) for item in self._query_partition(item_id)]

    def list_page_keys(self, item_id: str) -> list[str]:
        items = self._query_partition(item_id, ProjectionExpression="#page", names={"#page": "page"})
        return [item["page"]["S"] for item in items]

    def delete_item(self, key: tuple[str, str]) -> None:
        self._call("delete_item", Key=self._key(key))

    # ------------------------------------------------------------------
    # Index queries
    # ------------------------------------------------------------------

    def query_index(self, query: IndexQuery) -> IndexQueryResult:
        condition = "#pk = :pk"
        names = {"#pk": query.partition_attribute}
        values = {":pk": self._serializer.serialize(query.partition_value)}
        if query.sort_prefix:
            condition += " AND begins_with(#sk, :prefix)"
            names["#sk"] = query.sort_attribute
            values[":prefix"] = self._serializer.serialize(query.sort_prefix)

        kwargs: dict[str, Any] = dict(
            IndexName=query.index_name,
            KeyConditionExpression=condition,
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ScanIndexForward=query.ascending,
        )
        if query.limit is not None:
            kwargs["Limit"] = query.limit
        if query.exclusive_start:
            kwargs["ExclusiveStartKey"] = self._serialize(query.exclusive_start)

        response = self._call("query", **kwargs)
        last_key = response.get("LastEvaluatedKey")
        return IndexQueryResult(
            items=[self._deserialize(item) for item in response.get("Items", [])],
            last_evaluated_key=self._deserialize(last_key) if last_key else None,
        )
