"""
token_manager.credentials — Exchange caller tokens for scoped store credentials.

Validates the caller's RS256 bearer JWT against the identity provider's
JWKS, then assumes the tenant role through STS with an inline session
policy that pins every table action to the caller's own partition
(dynamodb:LeadingKeys).  System credentials, used only to create a tenant
before it has an identity of its own, come from the system role or the
process default credential chain.

Nothing is cached between requests: each call performs a fresh exchange.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import boto3
import jwt
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from data_access import StoreCredentials
from jwt import PyJWKClient

logger = Logger(service="token-manager")

_TENANT_CLAIMS = ("custom:tenant_id", "tenantid", "tenant_id")
_ROLE_CLAIMS = ("custom:role", "role", "roles")
_SYSTEM_ADMIN_ROLES = frozenset({"SystemAdmin", "Platform.Admin"})
_SYSTEM_SESSION_NAME = "tenant-manager-system"
_TABLE_ACTIONS = [
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:UpdateItem",
    "dynamodb:DeleteItem",
    "dynamodb:Query",
    "dynamodb:BatchGetItem",
    "dynamodb:BatchWriteItem",
]


class CredentialResolutionError(Exception):
    """Raised when a request cannot be turned into store credentials."""


class ResolverSettings(Protocol):
    table_name: str
    aws_region: str
    jwks_url: str | None
    token_audience: str | None
    token_issuer: str | None
    tenant_role_arn: str | None
    system_role_arn: str | None
    credential_duration_seconds: int


@dataclass(frozen=True)
class CallerIdentity:
    tenant_id: str
    sub: str
    roles: frozenset[str]

    @property
    def is_system_admin(self) -> bool:
        return bool(self.roles & _SYSTEM_ADMIN_ROLES)


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_roles(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, list):
        return frozenset(str(v).strip() for v in value if str(v).strip())
    if isinstance(value, str):
        normalized = value.replace(",", " ").split()
        return frozenset(part.strip() for part in normalized if part.strip())
    return frozenset()


def bearer_token(headers: Mapping[str, str]) -> str:
    """Extract the JWT from an Authorization header ("Bearer <jwt>" or a bare JWT)."""
    auth_header = _str_or_none(headers.get("authorization") or headers.get("Authorization"))
    if auth_header is None:
        raise CredentialResolutionError("Missing Authorization header")
    scheme, _, rest = auth_header.partition(" ")
    token = rest.strip() if scheme.lower() == "bearer" else auth_header
    if not token:
        raise CredentialResolutionError("Empty bearer token")
    return token


def caller_identity_from_claims(claims: Mapping[str, Any]) -> CallerIdentity:
    tenant_id = next(
        (text for name in _TENANT_CLAIMS if (text := _str_or_none(claims.get(name)))),
        None,
    )
    if tenant_id is None:
        raise CredentialResolutionError("Token carries no tenant claim")
    roles: frozenset[str] = frozenset()
    for name in _ROLE_CLAIMS:
        roles |= _parse_roles(claims.get(name))
    return CallerIdentity(
        tenant_id=tenant_id,
        sub=_str_or_none(claims.get("sub")) or "unknown",
        roles=roles,
    )


def table_arn(region: str, table_name: str) -> str:
    return f"arn:aws:dynamodb:{region}:*:table/{table_name}"


def build_session_policy(table_resource_arn: str, tenant_id: str | None) -> dict[str, Any]:
    """Inline STS session policy for the tenant table.

    With a tenant_id every action is restricted to items whose partition
    key equals that tenant.  Without one the whole table is granted, which
    is only issued to system administrators.
    """
    statement: dict[str, Any] = {
        "Effect": "Allow",
        "Action": list(_TABLE_ACTIONS),
        "Resource": [table_resource_arn],
    }
    if tenant_id is None:
        statement["Action"].append("dynamodb:Scan")
    else:
        statement["Condition"] = {
            "ForAllValues:StringEquals": {"dynamodb:LeadingKeys": [tenant_id]}
        }
    return {"Version": "2012-10-17", "Statement": [statement]}


def _session_name(identity: CallerIdentity) -> str:
    name = re.sub(r"[^\w+=,.@-]", "-", f"{identity.tenant_id}-{identity.sub}")
    return name[:64].ljust(2, "-")


def _credentials_from_sts(payload: Mapping[str, Any], *, tenant_scope: str | None) -> StoreCredentials:
    return StoreCredentials(
        access_key_id=str(payload["AccessKeyId"]),
        secret_access_key=str(payload["SecretAccessKey"]),
        session_token=_str_or_none(payload.get("SessionToken")),
        expiration=payload.get("Expiration"),
        tenant_scope=tenant_scope,
    )


class CredentialResolver:
    """
    Credential Resolver used by the tenant manager.

    resolve_from_request() returns caller-scoped credentials;
    resolve_system_credentials() returns request-independent credentials.
    Both suspend the caller while the blocking JWKS/STS work runs in a
    worker thread, and both raise CredentialResolutionError on any failure.
    """

    def __init__(
        self,
        configuration: ResolverSettings,
        *,
        sts_client: Any = None,
        jwk_client: PyJWKClient | None = None,
        boto_session: Any = None,
    ) -> None:
        self._configuration = configuration
        self._sts_client = sts_client
        self._jwk_client = jwk_client
        self._boto_session = boto_session

    def _get_jwk_client(self) -> PyJWKClient | None:
        """Lazy initialization of PyJWKClient."""
        if self._jwk_client is None and self._configuration.jwks_url:
            # Signing keys (not credentials) are cached for 5 minutes.
            self._jwk_client = PyJWKClient(
                self._configuration.jwks_url, cache_jwk_set=True, lifespan=300
            )
        return self._jwk_client

    def _get_sts(self) -> Any:
        if self._sts_client is None:
            self._sts_client = boto3.client("sts", region_name=self._configuration.aws_region)
        return self._sts_client

    # -- token verification -------------------------------------------------

    def verify_token(self, token: str) -> CallerIdentity:
        jwk_client = self._get_jwk_client()
        if jwk_client is None:
            raise CredentialResolutionError("Token verification is not configured (TOKEN_JWKS_URL)")
        audience = self._configuration.token_audience
        try:
            signing_key = jwk_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=audience,
                issuer=self._configuration.token_issuer,
                options={"verify_aud": audience is not None},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.warning("JWT has expired")
            raise CredentialResolutionError("Token has expired") from exc
        except jwt.PyJWTError as exc:
            logger.warning(f"Invalid JWT: {exc}")
            raise CredentialResolutionError(f"Invalid token: {exc}") from exc
        return caller_identity_from_claims(claims)

    # -- STS exchange -------------------------------------------------------

    def _assume_role(self, *, role_arn: str, session_name: str, policy: dict[str, Any] | None) -> Any:
        kwargs: dict[str, Any] = {
            "RoleArn": role_arn,
            "RoleSessionName": session_name,
            "DurationSeconds": self._configuration.credential_duration_seconds,
        }
        if policy is not None:
            kwargs["Policy"] = json.dumps(policy)
        try:
            return self._get_sts().assume_role(**kwargs)["Credentials"]
        except (ClientError, BotoCoreError) as exc:
            logger.error("AssumeRole failed", role_arn=role_arn, error=str(exc))
            raise CredentialResolutionError(f"Could not assume role {role_arn}: {exc}") from exc

    def credentials_for(self, identity: CallerIdentity) -> StoreCredentials:
        role_arn = self._configuration.tenant_role_arn
        if not role_arn:
            raise CredentialResolutionError("Tenant role is not configured (TENANT_ROLE_ARN)")
        scope = None if identity.is_system_admin else identity.tenant_id
        policy = build_session_policy(
            table_arn(self._configuration.aws_region, self._configuration.table_name), scope
        )
        payload = self._assume_role(
            role_arn=role_arn, session_name=_session_name(identity), policy=policy
        )
        logger.debug(
            "Issued scoped credentials",
            tenant_id=identity.tenant_id,
            sub=identity.sub,
            unrestricted=scope is None,
        )
        return _credentials_from_sts(payload, tenant_scope=scope)

    def system_credentials(self) -> StoreCredentials:
        role_arn = self._configuration.system_role_arn
        if role_arn:
            payload = self._assume_role(
                role_arn=role_arn, session_name=_SYSTEM_SESSION_NAME, policy=None
            )
            return _credentials_from_sts(payload, tenant_scope=None)

        session = self._boto_session or boto3.session.Session()
        try:
            credentials = session.get_credentials()
        except BotoCoreError as exc:
            raise CredentialResolutionError(f"Could not load system credentials: {exc}") from exc
        if credentials is None:
            raise CredentialResolutionError("No system credentials available")
        frozen = credentials.get_frozen_credentials()
        return StoreCredentials(
            access_key_id=frozen.access_key,
            secret_access_key=frozen.secret_key,
            session_token=frozen.token,
        )

    # -- async entry points -------------------------------------------------

    async def resolve_from_request(self, request: Any) -> StoreCredentials:
        token = bearer_token(request.headers)
        identity = await asyncio.to_thread(self.verify_token, token)
        return await asyncio.to_thread(self.credentials_for, identity)

    async def resolve_system_credentials(self) -> StoreCredentials:
        return await asyncio.to_thread(self.system_credentials)
