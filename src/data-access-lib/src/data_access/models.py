"""
data_access.models — Table schema and credential value types.

A TableSchema is declared once at process start and handed, unchanged, to
every helper built for a request.  StoreCredentials carry one caller's
temporary AWS credentials together with the tenant partition they are
restricted to (None for unrestricted system/admin credentials).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class KeyType(StrEnum):
    HASH = "HASH"
    RANGE = "RANGE"


class AttributeType(StrEnum):
    STRING = "S"
    NUMBER = "N"
    BINARY = "B"


@dataclass(frozen=True)
class KeyAttribute:
    name: str
    key_type: KeyType = KeyType.HASH
    attribute_type: AttributeType = AttributeType.STRING


@dataclass(frozen=True)
class TableSchema:
    """Declared shape of one DynamoDB table.

    key_schema must contain exactly one HASH attribute and at most one
    RANGE attribute.  Capacity values are only used when the table is
    created by ensure_table().
    """

    table_name: str
    key_schema: tuple[KeyAttribute, ...]
    read_capacity: int = 5
    write_capacity: int = 5

    def __post_init__(self) -> None:
        hash_keys = [k for k in self.key_schema if k.key_type is KeyType.HASH]
        range_keys = [k for k in self.key_schema if k.key_type is KeyType.RANGE]
        if len(hash_keys) != 1:
            raise ValueError(f"table {self.table_name!r} must declare exactly one HASH key")
        if len(range_keys) > 1:
            raise ValueError(f"table {self.table_name!r} may declare at most one RANGE key")

    @property
    def partition_key(self) -> str:
        return next(k.name for k in self.key_schema if k.key_type is KeyType.HASH)

    @property
    def key_names(self) -> frozenset[str]:
        return frozenset(k.name for k in self.key_schema)

    def create_table_kwargs(self) -> dict[str, Any]:
        return {
            "TableName": self.table_name,
            "KeySchema": [
                {"AttributeName": k.name, "KeyType": k.key_type.value} for k in self.key_schema
            ],
            "AttributeDefinitions": [
                {"AttributeName": k.name, "AttributeType": k.attribute_type.value}
                for k in self.key_schema
            ],
            "ProvisionedThroughput": {
                "ReadCapacityUnits": self.read_capacity,
                "WriteCapacityUnits": self.write_capacity,
            },
        }


@dataclass(frozen=True)
class StoreCredentials:
    """
    Temporary AWS credentials for one request.

    tenant_scope is the tenant partition these credentials are restricted
    to by their IAM session policy.  None means the credentials may touch
    every row of the table (system credentials, platform administrators).
    """

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)
    expiration: datetime | None = None
    tenant_scope: str | None = None

    @property
    def is_tenant_scoped(self) -> bool:
        return self.tenant_scope is not None
