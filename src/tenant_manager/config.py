"""
tenant_manager.config — Environment-specific service configuration.

configure() is called once at process start; the returned Configuration
is immutable and shared read-only by every request.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_ENVIRONMENT_ENV = "ENVIRONMENT"
_TABLE_NAME_ENV = "TENANT_TABLE_NAME"
_REGION_ENV = "AWS_REGION"
_PORT_ENV = "TENANT_SERVICE_PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_DYNAMODB_ENDPOINT_ENV = "DYNAMODB_ENDPOINT"
_JWKS_URL_ENV = "TOKEN_JWKS_URL"
_AUDIENCE_ENV = "TOKEN_AUDIENCE"
_ISSUER_ENV = "TOKEN_ISSUER"
_TENANT_ROLE_ARN_ENV = "TENANT_ROLE_ARN"
_SYSTEM_ROLE_ARN_ENV = "SYSTEM_ROLE_ARN"
_CREDENTIAL_DURATION_ENV = "CREDENTIAL_DURATION_SECONDS"
_CREATE_TABLE_ENV = "CREATE_TABLE_ON_STARTUP"

SERVICE_NAME = "Tenant Manager"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Configuration:
    environment: str
    service_name: str
    table_name: str
    aws_region: str
    port: int
    log_level: str
    dynamodb_endpoint: str | None = None
    jwks_url: str | None = None
    token_audience: str | None = None
    token_issuer: str | None = None
    tenant_role_arn: str | None = None
    system_role_arn: str | None = None
    credential_duration_seconds: int = 900
    create_table_on_startup: bool = False


_DEFAULTS: dict[str, dict[str, object]] = {
    "development": {
        "table_name": "TenantBootcamp",
        "aws_region": "us-east-1",
        "port": 3003,
        "log_level": "DEBUG",
        "dynamodb_endpoint": "http://localhost:8000",
        "jwks_url": "http://localhost:8766/.well-known/jwks.json",
        "token_audience": "api://platform-local",
        "token_issuer": "http://localhost:8766",
        "create_table_on_startup": True,
    },
    "production": {
        "table_name": "TenantBootcamp",
        "aws_region": "us-east-1",
        "port": 3003,
        "log_level": "INFO",
        "dynamodb_endpoint": None,
        "create_table_on_startup": False,
    },
}


def _str_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


def _int_env(name: str, default: object) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)  # type: ignore[call-overload]
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _bool_env(name: str, default: object) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return bool(default)
    text = raw.strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _text_env(name: str, default: object) -> str | None:
    if name in os.environ:
        return _str_or_none(os.environ[name])
    return default  # type: ignore[return-value]


def configure(environment: str | None = None) -> Configuration:
    """Load the configuration for an environment, applying env var overrides."""
    env = (environment or os.environ.get(_ENVIRONMENT_ENV) or "development").strip().lower()
    if env not in _DEFAULTS:
        raise ValueError(f"unknown environment {env!r}; expected one of: {', '.join(_DEFAULTS)}")
    defaults = _DEFAULTS[env]

    return Configuration(
        environment=env,
        service_name=SERVICE_NAME,
        table_name=_text_env(_TABLE_NAME_ENV, defaults["table_name"]) or str(defaults["table_name"]),
        aws_region=_text_env(_REGION_ENV, defaults["aws_region"]) or str(defaults["aws_region"]),
        port=_int_env(_PORT_ENV, defaults["port"]),
        log_level=(_text_env(_LOG_LEVEL_ENV, defaults["log_level"]) or "INFO").upper(),
        dynamodb_endpoint=_text_env(_DYNAMODB_ENDPOINT_ENV, defaults.get("dynamodb_endpoint")),
        jwks_url=_text_env(_JWKS_URL_ENV, defaults.get("jwks_url")),
        token_audience=_text_env(_AUDIENCE_ENV, defaults.get("token_audience")),
        token_issuer=_text_env(_ISSUER_ENV, defaults.get("token_issuer")),
        tenant_role_arn=_text_env(_TENANT_ROLE_ARN_ENV, None),
        system_role_arn=_text_env(_SYSTEM_ROLE_ARN_ENV, None),
        credential_duration_seconds=_int_env(_CREDENTIAL_DURATION_ENV, 900),
        create_table_on_startup=_bool_env(_CREATE_TABLE_ENV, defaults["create_table_on_startup"]),
    )
