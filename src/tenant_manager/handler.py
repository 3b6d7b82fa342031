"""
tenant_manager.handler — Tenant Resource Handler.

Maps each tenant operation onto the same four steps: resolve credentials,
build a KeyedDataAccessHelper for them, build the DynamoDB parameters from
the request, and translate the outcome into an HTTP response.

Tenant creation runs under system credentials so a tenant can register
before it has an identity of its own.  Every other operation runs under
the caller's resolved, tenant-scoped credentials.

Every store or credential failure answers 400 {"Error": "..."}; the error
kind is logged but not exposed to the caller.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from data_access import (
    KeyAttribute,
    KeyedDataAccessHelper,
    StoreCredentials,
    StoreError,
    TableSchema,
    dynamo_helper_for,
)
from fastapi import Request, Response
from token_manager import CredentialResolutionError, CredentialResolver

from tenant_manager.config import Configuration

logger = Logger(service="tenant-manager")

TENANT_PARTITION_KEY = "tenant_id"
MUTABLE_ATTRIBUTES = ("companyName", "accountName", "ownerName", "tier", "status")

HelperFactory = Callable[[TableSchema, StoreCredentials, Configuration], KeyedDataAccessHelper]

_HANDLED_ERRORS = (StoreError, CredentialResolutionError, ValueError)


def tenant_schema(configuration: Configuration) -> TableSchema:
    """The tenant table: one string partition key, tenant_id."""
    return TableSchema(
        table_name=configuration.table_name,
        key_schema=(KeyAttribute(TENANT_PARTITION_KEY),),
        read_capacity=5,
        write_capacity=5,
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _response(status_code: int, body: Any) -> Response:
    return Response(
        content=json.dumps(body, default=_json_default),
        status_code=status_code,
        media_type="application/json",
    )


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid number")


async def _json_body(request: Request) -> dict[str, Any]:
    raw_body = await request.body()
    if not raw_body:
        raise ValueError("Request body is required")
    try:
        # DynamoDB rejects binary floats; keep non-integral numbers as Decimal.
        body = json.loads(raw_body, parse_float=Decimal, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise ValueError("Malformed JSON body") from exc
    if not isinstance(body, dict):
        raise ValueError("JSON body must be an object")
    return body


def build_update_params(tenant_id: str, body: Mapping[str, Any]) -> dict[str, Any]:
    """UpdateItem parameters setting the mutable attributes present in body.

    Attribute names go through placeholders so reserved words such as
    "status" are safe.  The partition key is never written, and the
    condition keeps an update from creating a record that does not exist.
    """
    attributes = {name: body[name] for name in MUTABLE_ATTRIBUTES if name in body}
    if not attributes:
        raise ValueError(f"At least one of {', '.join(MUTABLE_ATTRIBUTES)} is required")

    names = {"#pk": TENANT_PARTITION_KEY}
    values: dict[str, Any] = {}
    set_parts: list[str] = []
    for name, value in attributes.items():
        names[f"#{name}"] = name
        values[f":{name}"] = value
        set_parts.append(f"#{name} = :{name}")
    return {
        "Key": {TENANT_PARTITION_KEY: tenant_id},
        "UpdateExpression": "set " + ", ".join(set_parts),
        "ConditionExpression": "attribute_exists(#pk)",
        "ExpressionAttributeNames": names,
        "ExpressionAttributeValues": values,
        "ReturnValues": "UPDATED_NEW",
    }


class TenantResourceHandler:
    """
    Request flows for the five tenant operations.

    received -> resolving credentials -> invoking store operation -> responding.
    A failure at any step goes straight to responding with a 400.
    The store call never starts before credential resolution completes.
    """

    def __init__(
        self,
        configuration: Configuration,
        schema: TableSchema,
        resolver: CredentialResolver,
        *,
        helper_factory: HelperFactory = dynamo_helper_for,
    ) -> None:
        self._configuration = configuration
        self._schema = schema
        self._resolver = resolver
        self._helper_factory = helper_factory

    @property
    def schema(self) -> TableSchema:
        return self._schema

    async def _helper(self, credentials: StoreCredentials) -> KeyedDataAccessHelper:
        # Session and resource construction loads botocore models from disk.
        return await asyncio.to_thread(
            self._helper_factory, self._schema, credentials, self._configuration
        )

    def _failure(self, message: str, exc: Exception, *, tenant_id: str | None = None) -> Response:
        if isinstance(exc, StoreError):
            kind = exc.kind.value
        elif isinstance(exc, CredentialResolutionError):
            kind = "credentials"
        else:
            kind = "bad_request"
        logger.error(f"{message}: {exc}", tenant_id=tenant_id, error_kind=kind)
        return _response(400, {"Error": message})

    async def get_tenant(self, request: Request, tenant_id: str) -> Response:
        logger.debug("Fetching tenant", tenant_id=tenant_id)
        try:
            credentials = await self._resolver.resolve_from_request(request)
            helper = await self._helper(credentials)
            tenant = await helper.get_item({TENANT_PARTITION_KEY: tenant_id})
        except _HANDLED_ERRORS as exc:
            return self._failure("Error getting tenant", exc, tenant_id=tenant_id)
        logger.debug("Tenant retrieved", tenant_id=tenant_id, found=tenant is not None)
        return _response(200, tenant or {})

    async def list_tenants(self, request: Request) -> Response:
        logger.debug("Fetching all tenants")
        try:
            credentials = await self._resolver.resolve_from_request(request)
            scan_params = {"TableName": self._schema.table_name}
            helper = await self._helper(credentials)
            tenants = await helper.scan(scan_params)
        except _HANDLED_ERRORS as exc:
            return self._failure("Error retrieving tenants", exc)
        logger.debug("Tenants successfully retrieved", count=len(tenants))
        return _response(200, tenants)

    async def create_tenant(self, request: Request) -> Response:
        tenant_id = None
        try:
            credentials = await self._resolver.resolve_system_credentials()
            tenant = await _json_body(request)
            tenant_id = _str_or_none(tenant.get(TENANT_PARTITION_KEY))
            logger.debug("Creating tenant", tenant_id=tenant_id)
            helper = await self._helper(credentials)
            await helper.put_item(tenant)
        except _HANDLED_ERRORS as exc:
            return self._failure("Error creating tenant", exc, tenant_id=tenant_id)
        logger.debug("Tenant created", tenant_id=tenant_id)
        return _response(200, {"status": "success"})

    async def update_tenant(self, request: Request) -> Response:
        tenant_id = None
        try:
            credentials = await self._resolver.resolve_from_request(request)
            body = await _json_body(request)
            tenant_id = _str_or_none(body.get("id")) or _str_or_none(body.get(TENANT_PARTITION_KEY))
            if tenant_id is None:
                raise ValueError("id is required")
            logger.debug("Updating tenant", tenant_id=tenant_id)
            update_params = {"TableName": self._schema.table_name, **build_update_params(tenant_id, body)}
            helper = await self._helper(credentials)
            tenant = await helper.update_item(update_params)
        except _HANDLED_ERRORS as exc:
            return self._failure("Error updating tenant", exc, tenant_id=tenant_id)
        logger.debug("Tenant updated", tenant_id=tenant_id)
        return _response(200, tenant)

    async def delete_tenant(self, request: Request, tenant_id: str) -> Response:
        logger.debug("Deleting tenant", tenant_id=tenant_id)
        try:
            credentials = await self._resolver.resolve_from_request(request)
            delete_params = {
                "TableName": self._schema.table_name,
                "Key": {TENANT_PARTITION_KEY: tenant_id},
            }
            helper = await self._helper(credentials)
            await helper.delete_item(delete_params)
        except _HANDLED_ERRORS as exc:
            return self._failure("Error deleting tenant", exc, tenant_id=tenant_id)
        logger.debug("Tenant deleted", tenant_id=tenant_id)
        return _response(200, {"status": "success"})

    async def ensure_table(self) -> bool:
        """Create the tenant table under system credentials if it is missing."""
        credentials = await self._resolver.resolve_system_credentials()
        helper = await self._helper(credentials)
        created = await helper.ensure_table()
        logger.info("Tenant table ready", table_name=self._schema.table_name, table_created=created)
        return created
