"""
data_access.client — KeyedDataAccessHelper.

Performs key-value operations against one declared DynamoDB table under an
explicitly supplied credential set.  A helper is built per request by
dynamo_helper_for(); it never falls back to the process default
credentials and holds no state shared between requests.

Security guarantees:
  - Every call is signed with the request's own StoreCredentials.
  - Tenant-scoped credentials may only address their own partition key;
    any other key raises TenantAccessViolation before the store is called.
  - On violation: log with caller/target tenant, emit metric, raise.

No retries happen here.  botocore's own retry policy is the only one.
"""

from __future__ import annotations

import asyncio
import decimal
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import boto3
from aws_lambda_powertools import Logger
from aws_lambda_powertools.metrics import MetricUnit, single_metric
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from data_access.exceptions import StoreValidationError, TenantAccessViolation, translate_client_error
from data_access.models import StoreCredentials, TableSchema

logger = Logger(service="data-access-lib")

_SECURITY_NAMESPACE = "platform/security"


class StoreSettings(Protocol):
    """The part of the service configuration the helper binds at construction."""

    aws_region: str
    dynamodb_endpoint: str | None


# ---------------------------------------------------------------------------
# Internal helper: metric emission
# ---------------------------------------------------------------------------


def _emit_tenant_violation_metric(*, caller_tenant_id: str, target_tenant_id: str) -> None:
    """Publish a TenantAccessViolation count metric (CloudWatch EMF).

    Never raises; a metric failure must not suppress the violation.
    """
    try:
        with single_metric(
            name="TenantAccessViolation",
            unit=MetricUnit.Count,
            value=1,
            namespace=_SECURITY_NAMESPACE,
        ) as metric:
            metric.add_dimension(name="caller_tenant_id", value=caller_tenant_id)
            metric.add_dimension(name="target_tenant_id", value=target_tenant_id or "unknown")
    except Exception:
        logger.exception(
            "Failed to emit TenantAccessViolation metric",
            caller_tenant_id=caller_tenant_id,
            target_tenant_id=target_tenant_id,
        )


# ---------------------------------------------------------------------------
# KeyedDataAccessHelper
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyedDataAccessHelper:
    """
    Credential-gated access to one DynamoDB table.

    Every operation is a coroutine: the boto3 call runs in a worker thread
    and the caller is suspended until the store answers.  Failures raise a
    StoreError subclass carrying the store's message.
    """

    schema: TableSchema
    credentials: StoreCredentials
    dynamodb: Any = field(repr=False, compare=False)

    @property
    def table_name(self) -> str:
        return self.schema.table_name

    def _table(self) -> Any:
        return self.dynamodb.Table(self.schema.table_name)

    # -- validation ---------------------------------------------------------

    def _validate_key(self, key: Any, *, operation: str) -> dict[str, Any]:
        if not isinstance(key, Mapping):
            raise StoreValidationError("key must be an object", operation=operation)
        supplied = set(key)
        if supplied != self.schema.key_names:
            raise StoreValidationError(
                f"key must contain exactly {sorted(self.schema.key_names)}, got {sorted(supplied)}",
                operation=operation,
            )
        for name in supplied:
            if key[name] is None or key[name] == "":
                raise StoreValidationError(f"key attribute {name!r} is empty", operation=operation)
        self._validate_partition(key, operation=operation)
        return dict(key)

    def _validate_partition(self, item: Mapping[str, Any], *, operation: str) -> None:
        """Raise TenantAccessViolation if a scoped caller addresses another partition."""
        scope = self.credentials.tenant_scope
        if scope is None:
            return
        target = item.get(self.schema.partition_key)
        if str(target) != scope:
            attempted_key = repr({k: item.get(k) for k in sorted(self.schema.key_names)})
            logger.error(
                "TenantAccessViolation: cross-tenant DynamoDB access attempt",
                caller_tenant_id=scope,
                target_tenant_id=str(target),
                attempted_key=attempted_key,
                operation=operation,
            )
            _emit_tenant_violation_metric(caller_tenant_id=scope, target_tenant_id=str(target))
            raise TenantAccessViolation(
                tenant_id=str(target),
                caller_tenant_id=scope,
                attempted_key=attempted_key,
                operation=operation,
            )

    @staticmethod
    def _store_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
        # TableName is bound by the schema; a caller-supplied one is ignored.
        return {k: v for k, v in (params or {}).items() if k != "TableName"}

    # -- execution ----------------------------------------------------------

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (ClientError, BotoCoreError) as exc:
            error = translate_client_error(exc, operation)
            logger.error(
                "DynamoDB operation failed",
                operation=operation,
                table_name=self.table_name,
                error_kind=error.kind.value,
                error_code=error.code,
                error_message=error.message,
            )
            raise error from exc
        except (TypeError, decimal.DecimalException) as exc:
            # Raised by the boto3 serializer for numbers DynamoDB cannot hold
            # (more than 38 digits, out of range) and for unsupported types.
            logger.error(
                "DynamoDB request could not be serialized",
                operation=operation,
                table_name=self.table_name,
                error_kind=StoreValidationError.kind.value,
                error_message=str(exc) or type(exc).__name__,
            )
            raise StoreValidationError(
                f"Value cannot be stored: {type(exc).__name__}", operation=operation
            ) from exc

    # -- operations ---------------------------------------------------------

    async def get_item(self, key_params: Mapping[str, Any]) -> dict[str, Any] | None:
        """Get a single item by its full key.

        Returns None if the item does not exist; absence is not an error.
        """
        key = self._validate_key(key_params, operation="get_item")
        response = await self._call("get_item", self._table().get_item, Key=key)
        return response.get("Item")

    async def scan(self, scan_params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Return the items visible under the bound credentials (first page only).

        Unrestricted credentials scan the whole table.  Row-restricted
        credentials cannot scan a shared table, so their view is read with a
        query on their own partition instead.
        """
        kwargs = self._store_params(scan_params)
        table = self._table()
        scope = self.credentials.tenant_scope
        if scope is None:
            response = await self._call("scan", table.scan, **kwargs)
        else:
            kwargs["KeyConditionExpression"] = Key(self.schema.partition_key).eq(scope)
            response = await self._call("scan", table.query, **kwargs)
        return response.get("Items", [])

    async def put_item(self, record: Mapping[str, Any]) -> None:
        """Unconditional upsert of a full record.  Returns nothing."""
        if not isinstance(record, Mapping):
            raise StoreValidationError("record must be an object", operation="put_item")
        missing = sorted(name for name in self.schema.key_names if record.get(name) in (None, ""))
        if missing:
            raise StoreValidationError(
                f"record is missing key attribute(s): {', '.join(missing)}",
                operation="put_item",
            )
        self._validate_partition(record, operation="put_item")
        await self._call("put_item", self._table().put_item, Item=dict(record), ReturnValues="NONE")

    async def update_item(self, update_params: Mapping[str, Any]) -> dict[str, Any]:
        """Apply an update expression to one item.

        update_params carries Key, UpdateExpression, ExpressionAttributeNames,
        ExpressionAttributeValues, ReturnValues and optionally a
        ConditionExpression.  Returns the "Attributes" of the response.
        """
        kwargs = self._store_params(update_params)
        kwargs["Key"] = self._validate_key(kwargs.get("Key"), operation="update_item")
        response = await self._call("update_item", self._table().update_item, **kwargs)
        return response.get("Attributes", {})

    async def delete_item(self, delete_params: Mapping[str, Any]) -> None:
        """Delete one item by key.  Deleting a missing key succeeds."""
        kwargs = self._store_params(delete_params)
        kwargs["Key"] = self._validate_key(kwargs.get("Key"), operation="delete_item")
        await self._call("delete_item", self._table().delete_item, **kwargs)

    async def ensure_table(self) -> bool:
        """Create the declared table if it does not exist yet.

        Returns True when the table was created by this call.
        """
        client = self.dynamodb.meta.client
        try:
            await asyncio.to_thread(client.describe_table, TableName=self.table_name)
            return False
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise translate_client_error(exc, "describe_table") from exc
        except BotoCoreError as exc:
            raise translate_client_error(exc, "describe_table") from exc
        logger.info("Creating table", table_name=self.table_name)
        await self._call("create_table", client.create_table, **self.schema.create_table_kwargs())
        waiter = client.get_waiter("table_exists")
        await self._call("create_table", waiter.wait, TableName=self.table_name)
        return True


def dynamo_helper_for(
    schema: TableSchema,
    credentials: StoreCredentials,
    configuration: StoreSettings,
    *,
    dynamodb_resource: Any = None,
) -> KeyedDataAccessHelper:
    """Build a helper bound to one table and one credential set.

    The boto3 session is created from the supplied credentials only; the
    region and optional endpoint come from the configuration.
    """
    if dynamodb_resource is None:
        session = boto3.session.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            region_name=configuration.aws_region,
        )
        dynamodb_resource = session.resource(
            "dynamodb",
            endpoint_url=configuration.dynamodb_endpoint,
        )
    return KeyedDataAccessHelper(schema=schema, credentials=credentials, dynamodb=dynamodb_resource)
