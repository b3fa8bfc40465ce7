"""
HTTP application factory.

Everything except the health checks and API docs requires a bearer token.
Domain exceptions leave the app as `{success, data, error, meta}` envelopes
with a localized default message.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from src.api.auth import validate_secrets
from src.api.routes import router
from src.api.schemas import error_response
from src.config.settings import get_settings
from src.infra.database import init_database, session_scope
from src.lib.errors import AUTH_REQUIRED, classify_exception, resolve_language
from src.lib.exceptions import AmpTrackerException
from src.lib.logging import bind_request_context, setup_logging
from src.lib.security import create_security_middleware
from src.services.redis_service import get_redis_service
from src.services.template_store import TemplateStore

logger = logging.getLogger(__name__)

# Request headers a browser client may send cross-origin
_ALLOWED_HEADERS: list[str] = [
    "Authorization",
    "Content-Type",
    "Accept",
    "Accept-Language",
    "X-Request-ID",
]

# Reachable without a bearer token
_PUBLIC_PATHS: frozenset[str] = frozenset({
    "/health",
    "/api/v1/health",
    "/docs",
    "/redoc",
    "/openapi.json",
})


def _language(request: Request) -> str:
    return resolve_language(request.headers.get("accept-language"))


async def _auth_gate_dispatch(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    Reject requests to non-public paths that carry no bearer token.
    Token verification itself happens in the route dependencies.

    Also binds the request id (client-supplied ``X-Request-ID`` or a fresh
    one) to the logging context and echoes it on the response.
    """
    request_id = bind_request_context(
        request.headers.get("x-request-id"), method=request.method, path=request.url.path
    )
    # CORS preflight (OPTIONS) must pass through
    if request.method == "OPTIONS":
        return await call_next(request)
    path = request.url.path.rstrip("/") or "/"
    if path not in _PUBLIC_PATHS:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=401,
                content=error_response(AUTH_REQUIRED, lang=_language(request)),
                headers={"WWW-Authenticate": "Bearer", "X-Request-ID": request_id},
            )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_database()
    async with session_scope() as session:
        seeded = await TemplateStore(session).seed_default_templates()
    if seeded:
        logger.info("Seeded %d default template sets", len(seeded))
    yield
    await get_redis_service().close()


def create_app() -> FastAPI:
    """
    Build the application from current settings.

    Raises:
        RuntimeError: If the signing secret is unusable
        ValueError: If a wildcard CORS origin is configured in production
    """
    settings = get_settings()
    setup_logging(dev_mode=settings.dev_mode)
    validate_secrets()

    app = FastAPI(
        title="AMP Tracker",
        description="Daily time blocks, checklists and to-dos",
        version="0.1.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=_lifespan,
    )

    # Domain errors: client mistakes keep their message, server-side ones do not
    @app.exception_handler(AmpTrackerException)
    async def domain_exception_handler(
        request: Request, exc: AmpTrackerException,
    ) -> JSONResponse:
        code, status_code = classify_exception(exc)
        server_side = status_code >= 500
        logger.log(
            logging.ERROR if server_side else logging.INFO,
            "%s on %s %s: %s", code, request.method, request.url.path, exc,
        )
        message = None if server_side else str(exc)
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, message, lang=_language(request)),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception on %s %s", request.method, request.url.path,
        )
        code, status_code = classify_exception(exc)
        return JSONResponse(
            status_code=status_code,
            content=error_response(code, lang=_language(request)),
        )

    # No origins configured means no cross-origin access
    cors_origins = list(settings.cors_origins)

    if settings.is_production and "*" in cors_origins:
        raise ValueError(
            "AMP_CORS_ORIGINS may not contain the wildcard '*' in production; list the origins explicitly."
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=_ALLOWED_HEADERS,
    )

    if cors_origins:
        logger.info("CORS enabled for origins: %s", cors_origins)
    else:
        logger.info("CORS disabled: AMP_CORS_ORIGINS is empty")

    app.add_middleware(BaseHTTPMiddleware, dispatch=_auth_gate_dispatch)

    create_security_middleware(app)

    app.include_router(router)

    # Unversioned health check for load balancers
    @app.get("/health")
    async def root_health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app


__all__ = ["create_app", "router"]
