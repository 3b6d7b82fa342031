"""
data_access — Credential-gated DynamoDB access library.

The only permitted way for the tenant manager to reach DynamoDB: every
helper is built per request from the caller's own credentials.
"""

from data_access.client import KeyedDataAccessHelper, dynamo_helper_for
from data_access.exceptions import (
    BackendUnavailable,
    ItemNotFound,
    StoreAccessDenied,
    StoreError,
    StoreErrorKind,
    StoreValidationError,
    TenantAccessViolation,
)
from data_access.models import KeyAttribute, StoreCredentials, TableSchema

__all__ = [
    "BackendUnavailable",
    "ItemNotFound",
    "KeyAttribute",
    "KeyedDataAccessHelper",
    "StoreAccessDenied",
    "StoreCredentials",
    "StoreError",
    "StoreErrorKind",
    "StoreValidationError",
    "TableSchema",
    "TenantAccessViolation",
    "dynamo_helper_for",
]
