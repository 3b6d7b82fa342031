"""
tenant_manager.app — HTTP surface of the tenant manager.

Registers the tenant routes on a FastAPI application, adds the
cross-origin headers to every response, and serves it with uvicorn.

Endpoints:
    GET    /tenant/health  Unauthenticated liveness check.
    GET    /tenant/{id}    Read one tenant (caller credentials).
    GET    /tenants        List tenants (caller credentials).
    POST   /tenant         Create a tenant (system credentials).
    PUT    /tenant         Update a tenant (caller credentials).
    DELETE /tenant/{id}    Delete a tenant (caller credentials).
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from data_access import dynamo_helper_for
from fastapi import FastAPI, Request, Response
from token_manager import CredentialResolver

from tenant_manager.config import Configuration, configure
from tenant_manager.handler import HelperFactory, TenantResourceHandler, logger, tenant_schema

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS, PUT, PATCH, DELETE",
    "Access-Control-Allow-Headers": (
        "Content-Type, Origin, X-Amz-Date, Authorization, X-Api-Key, X-Amz-Security-Token, "
        "Access-Control-Allow-Headers, X-Requested-With, Access-Control-Allow-Origin"
    ),
}


def create_app(
    configuration: Configuration | None = None,
    *,
    resolver: CredentialResolver | None = None,
    helper_factory: HelperFactory | None = None,
) -> FastAPI:
    """Build the tenant manager application.

    The table schema is declared once here and handed to the resource
    handler; nothing else is shared between requests.
    """
    configuration = configuration or configure()
    logger.setLevel(configuration.log_level)
    handler = TenantResourceHandler(
        configuration,
        tenant_schema(configuration),
        resolver or CredentialResolver(configuration),
        helper_factory=helper_factory or dynamo_helper_for,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if configuration.create_table_on_startup:
            await handler.ensure_table()
        logger.info(f"{configuration.service_name} service started on port {configuration.port}")
        yield

    app = FastAPI(title="tenant-manager", lifespan=lifespan)

    @app.middleware("http")
    async def cross_origin_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Fixed CORS headers on every response, with or without an Origin header.

        CORSMiddleware only decorates requests that carry an Origin.
        """
        if request.method == "OPTIONS":
            response = Response(status_code=200)
        else:
            response = await call_next(request)
        response.headers.update(_CORS_HEADERS)
        return response

    @app.get("/tenant/health")
    async def health() -> dict[str, Any]:
        return {"service": configuration.service_name, "isAlive": True}

    @app.get("/tenant/{tenant_id}")
    async def get_tenant(tenant_id: str, request: Request) -> Response:
        return await handler.get_tenant(request, tenant_id)

    @app.get("/tenants")
    async def list_tenants(request: Request) -> Response:
        return await handler.list_tenants(request)

    @app.post("/tenant")
    async def create_tenant(request: Request) -> Response:
        return await handler.create_tenant(request)

    @app.put("/tenant")
    async def update_tenant(request: Request) -> Response:
        return await handler.update_tenant(request)

    @app.delete("/tenant/{tenant_id}")
    async def delete_tenant(tenant_id: str, request: Request) -> Response:
        return await handler.delete_tenant(request, tenant_id)

    return app


def main() -> None:
    configuration = configure()
    uvicorn.run(
        create_app(configuration),
        host="0.0.0.0",
        port=configuration.port,
        log_level=configuration.log_level.lower(),
    )


if __name__ == "__main__":
    main()
