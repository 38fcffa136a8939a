"""
AWS DynamoDB document store implementation.

This module provides the production DocumentStore backend. It uses
aiobotocore for async calls and boto3's type serializers to convert plain
Python values to DynamoDB attribute values and back.

Invariants:
    - Conditions are rendered with placeholder names/values only, so reserved
      words and odd attribute names are always safe
    - Floats are sent as Decimal; whole-number Decimals come back as int
    - ConditionalCheckFailedException maps to ConditionalCheckFailedError,
      TransactionCanceledException to TransactionCanceledError

How to change safely:
    - Test with DynamoDB Local or LocalStack before deploying to AWS
    - Keep render_condition() in sync with Condition.evaluate() semantics
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from aiobotocore.session import get_session
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError

from ..config import DynamoDbConfig
from ..tables import AttributeMap, Key
from .base import (
    AttributeEquals,
    AttributeNotExists,
    Condition,
    ConditionalCheckFailedError,
    DeleteOperation,
    PutOperation,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactionCanceledError,
    WriteOperation,
)

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo_value(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_value(v) for v in value]
    return value


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, set, frozenset)):
        return [_from_dynamo_value(v) for v in value]
    return value


def serialize_item(item: AttributeMap) -> Dict[str, Any]:
    """Plain attribute map -> DynamoDB wire attribute map."""
    return {k: _serializer.serialize(_to_dynamo_value(v)) for k, v in item.items()}


def deserialize_item(item: Dict[str, Any]) -> AttributeMap:
    """DynamoDB wire attribute map -> plain attribute map."""
    return {k: _from_dynamo_value(_deserializer.deserialize(v)) for k, v in item.items()}


def render_condition(condition: Optional[Condition]) -> Dict[str, Any]:
    """Render a Condition as ConditionExpression request parameters.

    Returns an empty dict when there is nothing to guard.

    Example:
        >>> render_condition(Condition.all(AttributeEquals("v", 3)))
        {'ConditionExpression': '#c0 = :c0',
         'ExpressionAttributeNames': {'#c0': 'v'},
         'ExpressionAttributeValues': {':c0': {'N': '3'}}}
    """
    if not condition:
        return {}

    parts = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    for idx, clause in enumerate(condition.clauses):
        name_ref = f"#c{idx}"
        names[name_ref] = clause.name
        if isinstance(clause, AttributeNotExists):
            parts.append(f"attribute_not_exists({name_ref})")
        elif isinstance(clause, AttributeEquals):
            value_ref = f":c{idx}"
            values[value_ref] = _serializer.serialize(_to_dynamo_value(clause.value))
            parts.append(f"{name_ref} = {value_ref}")
        else:
            raise TypeError(f"Unsupported condition clause: {clause!r}")

    params: Dict[str, Any] = {
        "ConditionExpression": " AND ".join(parts),
        "ExpressionAttributeNames": names,
    }
    if values:
        params["ExpressionAttributeValues"] = values
    return params


def build_transact_item(operation: WriteOperation) -> Dict[str, Any]:
    """Convert a write operation into one TransactItems entry."""
    if isinstance(operation, PutOperation):
        return {
            "Put": {
                "TableName": operation.table_name,
                "Item": serialize_item(operation.item),
                **render_condition(operation.condition),
            }
        }
    if isinstance(operation, DeleteOperation):
        return {
            "Delete": {
                "TableName": operation.table_name,
                "Key": serialize_item(operation.key),
                **render_condition(operation.condition),
            }
        }
    raise TypeError(f"Unsupported write operation: {operation!r}")


class DynamoDbDocumentStore:
    """DynamoDB implementation of the DocumentStore protocol.

    Attributes:
        config: DynamoDB configuration

    Example:
        >>> config = DynamoDbConfig(region="eu-west-1")
        >>> async with DynamoDbDocumentStore(config) as store:
        ...     await store.put("users", {"id": "u1", "name": "Ada"})
    """

    def __init__(self, config: DynamoDbConfig, client: Any = None) -> None:
        """Initialize the store.

        Args:
            config: DynamoDbConfig instance
            client: Already-open aiobotocore DynamoDB client to use instead
                of creating one on connect()
        """
        self.config = config
        self._client = client
        self._client_ctx = None
        self._owns_client = client is None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the DynamoDB client.

        Raises:
            StoreConnectionError: If the client cannot be created
        """
        if self._client is not None:
            return

        client_kwargs: Dict[str, Any] = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url
        if self.config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.config.secret_access_key

        try:
            session = get_session()
            self._client_ctx = session.create_client("dynamodb", **client_kwargs)
            self._client = await self._client_ctx.__aenter__()
        except EndpointConnectionError as e:
            raise StoreConnectionError(f"Failed to connect to DynamoDB endpoint: {e}") from e

        logger.info(
            "Connected to DynamoDB",
            extra={
                "region": self.config.region,
                "endpoint": self.config.endpoint_url or "AWS",
            },
        )

    async def close(self) -> None:
        """Close the client if this store created it."""
        if self._client is not None and self._owns_client and self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None
            logger.info("DynamoDB client closed")

    async def __aenter__(self) -> DynamoDbDocumentStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        await self.close()

    async def put(
        self,
        table_name: str,
        item: AttributeMap,
        condition: Optional[Condition] = None,
    ) -> None:
        request = {
            "TableName": table_name,
            "Item": serialize_item(item),
            **render_condition(condition),
        }
        await self._call("put_item", request, table_name=table_name)

    async def delete(
        self,
        table_name: str,
        key: Key,
        condition: Optional[Condition] = None,
    ) -> None:
        request = {
            "TableName": table_name,
            "Key": serialize_item(key),
            **render_condition(condition),
        }
        await self._call("delete_item", request, table_name=table_name, key=key)

    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        request = {"TransactItems": [build_transact_item(op) for op in operations]}
        await self._call("transact_write_items", request)

    async def get(self, table_name: str, key: Key) -> AttributeMap | None:
        response = await self._call(
            "get_item",
            {"TableName": table_name, "Key": serialize_item(key), "ConsistentRead": True},
            table_name=table_name,
            key=key,
        )
        item = response.get("Item")
        return deserialize_item(item) if item is not None else None

    async def _call(
        self,
        method: str,
        request: Dict[str, Any],
        table_name: str | None = None,
        key: Key | None = None,
    ) -> Dict[str, Any]:
        if self._client is None:
            raise StoreConnectionError("Not connected to DynamoDB")

        try:
            response = await asyncio.wait_for(
                getattr(self._client, method)(**request),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise StoreTimeoutError(f"DynamoDB {method} timed out")
        except EndpointConnectionError as e:
            raise StoreConnectionError(f"DynamoDB endpoint unreachable: {e}") from e
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ConditionalCheckFailedException":
                raise ConditionalCheckFailedError(
                    str(e), table_name=table_name, key=key
                ) from e
            if error_code == "TransactionCanceledException":
                reasons = [
                    reason.get("Code", "None")
                    for reason in e.response.get("CancellationReasons", [])
                ]
                raise TransactionCanceledError(str(e), reasons=reasons) from e
            raise StoreError(f"DynamoDB {method} failed: {e}") from e

        logger.debug("DynamoDB call completed", extra={"method": method, "table": table_name})
        return response
