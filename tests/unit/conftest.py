from __future__ import annotations

import importlib.util
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import boto3
import pytest
from data_access import StoreCredentials
from moto import mock_aws
from token_manager import CredentialResolutionError

from tenant_manager.config import Configuration
from tenant_manager.handler import tenant_schema

REGION = "us-east-1"
TABLE_NAME = "TenantBootcamp"
ADMIN = "admin"


def _load_mock_jwks() -> Any:
    repo_root = Path(__file__).resolve().parents[2]
    spec = importlib.util.spec_from_file_location(
        "mock_jwks", repo_root / "tests" / "mocks" / "mock_jwks" / "main.py"
    )
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)  # type: ignore[union-attr]
    return module


mock_jwks: Any = _load_mock_jwks()


class StubResolver:
    """Credential resolver that trusts an X-Test-Tenant header instead of a JWT.

    "admin" resolves to unrestricted credentials; any other value to
    credentials scoped to that tenant.  A missing header fails the same way
    a missing Authorization header does.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    async def resolve_from_request(self, request: Any) -> StoreCredentials:
        tenant = request.headers.get("x-test-tenant")
        if tenant is None:
            raise CredentialResolutionError("Missing Authorization header")
        self.calls.append(("request", tenant))
        return StoreCredentials(
            access_key_id="testing",
            secret_access_key="testing",
            session_token="testing",
            tenant_scope=None if tenant == ADMIN else tenant,
        )

    async def resolve_system_credentials(self) -> StoreCredentials:
        self.calls.append(("system", None))
        return StoreCredentials(access_key_id="testing", secret_access_key="testing")


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal AWS env vars required by boto3 and moto."""
    monkeypatch.setenv("AWS_REGION", REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")


@pytest.fixture
def configuration() -> Configuration:
    return Configuration(
        environment="development",
        service_name="Tenant Manager",
        table_name=TABLE_NAME,
        aws_region=REGION,
        port=3003,
        log_level="DEBUG",
        jwks_url="http://localhost:8766/.well-known/jwks.json",
        token_audience=mock_jwks.AUDIENCE,
        token_issuer=mock_jwks.ISSUER,
        tenant_role_arn="arn:aws:iam::123456789012:role/tenant-user",
        system_role_arn=None,
        credential_duration_seconds=900,
        create_table_on_startup=False,
    )


@pytest.fixture
def resolver() -> StubResolver:
    return StubResolver()


@pytest.fixture
def dynamodb(configuration: Configuration) -> Iterator[Any]:
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name=REGION)
        resource.create_table(**tenant_schema(configuration).create_table_kwargs())
        yield resource
