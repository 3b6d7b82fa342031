"""
token_manager — Credential Resolver for the tenant manager.

Turns an inbound request's bearer token into temporary, tenant-scoped
DynamoDB credentials, or supplies system credentials for tenant creation.
"""

from token_manager.credentials import (
    CallerIdentity,
    CredentialResolutionError,
    CredentialResolver,
    build_session_policy,
)

__all__ = [
    "CallerIdentity",
    "CredentialResolutionError",
    "CredentialResolver",
    "build_session_policy",
]
