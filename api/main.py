"""
api/main.py -- FastAPI application entry point for gymops.

Run with:  uvicorn api.main:app --reload
           python main.py --environment development

Middleware stack:
  log_requests -- logs method, path, status, latency and client for every request

Lifespan handles startup and shutdown symmetrically. Startup sequence:
  1. Settings    -- passed to create_app() or read via get_settings()
  2. Signing key -- decoded from base64 and length-checked before any token
                    can be issued (SigningError aborts startup)
  3. User store  -- engine + pool created, schema ensured
  4. Ping        -- storage reachability verified (StorageError aborts startup)
Everything is then held by one IdentityService on app.state. Shutdown
disposes the connection pool.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.errors import IdentityError, NotFound, StorageError
from auth.service import IdentityService
from auth.store import UserStore
from auth.tokens import decode_signing_key
from core.config import Settings, get_settings

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gymops.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_identity_service(settings: Settings) -> IdentityService:
    """Decode the key, connect to storage and verify it is reachable.

    Raises SigningError or StorageError; the pool is released if the ping
    fails so a failed startup leaks no connections.
    """
    signing_key = decode_signing_key(settings.auth_token_key)
    store = UserStore(
        settings.database_url,
        timeout=settings.db_timeout_seconds,
        pool_size=settings.db_pool_size,
    )
    try:
        store.ping()
    except StorageError:
        store.close()
        raise
    return IdentityService(
        store,
        signing_key,
        issuer=settings.token_issuer,
        token_ttl=timedelta(seconds=settings.token_expire_seconds),
        password_rounds=settings.bcrypt_rounds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared resources on startup, release them on shutdown."""
    settings: Settings = app.state.settings or get_settings()
    app.state.settings = settings
    logger.info("gymops API starting up (environment=%s)", settings.environment)
    app.state.identity = build_identity_service(settings)
    logger.info("Database connection pool established")

    yield

    app.state.identity.store.close()
    logger.info("gymops API shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the body is not decodable JSON of the expected types."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="bad_request",
                message="Request body is malformed.",
                detail=str(exc.errors()),
            )
        ).model_dump(exclude_none=True),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Covers route-raised HTTPException (detail is already a dict) as well as
    routing 404/405 responses, which carry a plain string detail.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    messages = {
        404: ("not_found", "The requested resource could not be found."),
        405: ("method_not_allowed", f"The {request.method} method is not supported for this resource."),
    }
    code, message = messages.get(exc.status_code, (f"http_{exc.status_code}", str(exc.detail)))
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(exclude_none=True),
        headers=exc.headers,
    )


async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(
            error=ErrorDetail(code="not_found", message="The requested resource could not be found.")
        ).model_dump(exclude_none=True),
    )


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """Storage and crypto failures: full detail to the log, nothing to the client."""
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc, exc_info=exc)
    return _internal_error()


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _internal_error()


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="The server encountered a problem and could not process your request.",
            )
        ).model_dump(exclude_none=True),
    )


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined here (not in a router) so it is always reachable regardless of
# router registration state.
# ---------------------------------------------------------------------------


def healthcheck(request: Request) -> HealthResponse:
    """Return liveness, environment, version and database reachability."""
    identity: IdentityService = request.app.state.identity
    try:
        identity.store.ping()
        database = "ok"
    except StorageError:
        database = "error"
    return HealthResponse(
        environment=request.app.state.settings.environment,
        version=VERSION,
        components={"app": "ok", "database": database},
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Assemble the ASGI app. Settings default to get_settings() at startup."""
    app = FastAPI(
        title="gymops API",
        description="User registration, login and bearer token issuance.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.middleware("http")(log_requests)

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(NotFound, not_found_handler)
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(users_router, prefix="/api/v1", tags=["Users"])
    app.add_api_route("/api/v1/healthcheck", healthcheck, methods=["GET"], tags=["Health"])
    return app


app = create_app()
