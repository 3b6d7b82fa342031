"""
data_access.exceptions — Store error taxonomy.

Every failure of a store operation surfaces as a StoreError.  The kind
attribute classifies it so callers can tell throttling from bad input
from authorization failures, even where the HTTP contract does not.
"""

from __future__ import annotations

from enum import StrEnum

from botocore.exceptions import BotoCoreError, ClientError


class StoreErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    VALIDATION = "validation"


class StoreError(Exception):
    """
    Raised when a store operation fails.

    Attributes:
        kind:      StoreErrorKind classification.
        message:   The underlying store's error message.
        code:      The store error code (e.g. "AccessDeniedException"), if any.
        operation: The helper operation that failed (e.g. "get_item").
    """

    kind: StoreErrorKind = StoreErrorKind.BACKEND_UNAVAILABLE

    def __init__(self, message: str, *, code: str | None = None, operation: str | None = None) -> None:
        self.message = message
        self.code = code
        self.operation = operation
        super().__init__(message)


class ItemNotFound(StoreError):
    kind = StoreErrorKind.NOT_FOUND


class StoreAccessDenied(StoreError):
    kind = StoreErrorKind.FORBIDDEN


class BackendUnavailable(StoreError):
    kind = StoreErrorKind.BACKEND_UNAVAILABLE


class StoreValidationError(StoreError):
    kind = StoreErrorKind.VALIDATION


class TenantAccessViolation(StoreAccessDenied):
    """
    Raised when tenant-scoped credentials address another tenant's partition.

    Detected before the store is contacted.  The IAM session policy on the
    credentials would reject the call anyway; raising here keeps the
    attempt visible in logs and metrics.

    Attributes:
        tenant_id:        Tenant whose row was protected (the access target).
        caller_tenant_id: Tenant the credentials are scoped to.
        attempted_key:    repr of the key that was attempted.
    """

    def __init__(
        self,
        *,
        tenant_id: str,
        caller_tenant_id: str,
        attempted_key: str,
        operation: str | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.caller_tenant_id = caller_tenant_id
        self.attempted_key = attempted_key
        super().__init__(
            f"Tenant {caller_tenant_id!r} attempted to access {attempted_key!r} "
            f"belonging to tenant {tenant_id!r}",
            code="TenantAccessViolation",
            operation=operation,
        )


_FORBIDDEN_CODES = frozenset(
    {
        "AccessDeniedException",
        "AccessDenied",
        "UnrecognizedClientException",
        "ExpiredTokenException",
        "InvalidSignatureException",
        "MissingAuthenticationTokenException",
    }
)
_NOT_FOUND_CODES = frozenset({"ResourceNotFoundException", "ConditionalCheckFailedException"})
_VALIDATION_CODES = frozenset({"ValidationException", "SerializationException"})


def translate_client_error(exc: Exception, operation: str) -> StoreError:
    """Map a botocore failure onto the StoreError taxonomy."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", "Unknown"))
        message = str(error.get("Message") or exc)
        if code in _FORBIDDEN_CODES:
            return StoreAccessDenied(message, code=code, operation=operation)
        if code in _NOT_FOUND_CODES:
            return ItemNotFound(message, code=code, operation=operation)
        if code in _VALIDATION_CODES:
            return StoreValidationError(message, code=code, operation=operation)
        return BackendUnavailable(message, code=code, operation=operation)
    if isinstance(exc, BotoCoreError):
        return BackendUnavailable(str(exc), code=type(exc).__name__, operation=operation)
    raise TypeError(f"cannot translate {type(exc).__name__} into a StoreError")
