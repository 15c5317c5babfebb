"""
api/main.py -- FastAPI application entry point for budgetkeeper accounts.

Exposes the auth core over HTTP: password and provider login, refresh,
logout, registration and account management.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SessionMiddleware  -- OAuth state storage for authlib

Lifespan handles startup (account store, session cache, services, purge
task) and shutdown (cancel purge task, close connections) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.accounts import AccountService
from auth.errors import AuthError, ConflictError, InternalError, NotFoundError, UnauthorizedError
from auth.oauth import oauth as oauth_client
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from cache.store import build_cache
from core.config import get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("budgetkeeper.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired session entries every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and ends the loop.
    """
    while True:
        await asyncio.sleep(60 * 60)
        removed = app.state.cache.purge_expired()
        if removed:
            logger.info("Purged %d expired session entries", removed)


def build_services(app: FastAPI, store: AccountStore, cache) -> None:
    """Wire the auth services onto app.state around an account store and cache."""
    sessions = SessionStore(cache, min_ttl_seconds=_settings.refresh_token_ttl_seconds)
    tokens = TokenIssuer.from_settings(_settings)
    auth = AuthService(
        store,
        sessions,
        tokens,
        session_ttl_seconds=_settings.effective_session_ttl_seconds,
        rotate_refresh_tokens=_settings.rotate_refresh_tokens,
        bind_sessions_to_device=_settings.bind_sessions_to_device,
    )
    app.state.store = store
    app.state.cache = cache
    app.state.sessions = sessions
    app.state.tokens = tokens
    app.state.auth = auth
    app.state.accounts = AccountService(auth)
    app.state.oauth = oauth_client


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order: account store, then cache (Redis is pinged here so a bad
    CACHE_URL fails startup, not the first login), then services, then the
    purge task that references app.state.cache.
    """
    logger.info("budgetkeeper API starting up")
    store = AccountStore(_settings.database_url)
    cache = build_cache(_settings)
    build_services(app, store, cache)
    logger.info(
        "Auth initialized (rotation=%s, device_binding=%s)",
        _settings.rotate_refresh_tokens,
        _settings.bind_sessions_to_device,
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.cache.close()
    app.state.store.close()
    logger.info("budgetkeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="budgetkeeper accounts API",
    description="Account registration, login and session management.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# authlib keeps the OAuth state value in the Starlette session between the
# authorization redirect and the callback.
app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key)


@app.middleware("http")
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
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_AUTH_ERROR_STATUS = {
    NotFoundError: 404,
    UnauthorizedError: 401,
    ConflictError: 409,
    InternalError: 500,
}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the auth core's error kinds onto HTTP statuses.

    InternalError messages describe server misconfiguration, so the client
    only sees a generic message and the detail goes to the log.
    """
    status_code = _AUTH_ERROR_STATUS.get(type(exc), 500)
    if status_code == 500:
        logger.error("Internal auth error on %s %s: %s", request.method, request.url.path, exc)
        error = ErrorDetail(code=exc.code, message="An unexpected error occurred.")
    else:
        error = ErrorDetail(code=exc.code, message=str(exc), detail=exc.detail)
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field; str(dict) would produce a Python repr, not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


def _component_status(check) -> str:
    try:
        return "ok" if check() else "unavailable"
    except Exception as exc:
        logger.warning("Health check failed: %s", exc)
        return "unavailable"


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and the state of the store and cache."""
    components = {
        "app": "ok",
        "database": _component_status(request.app.state.store.ping),
        "cache": _component_status(request.app.state.cache.ping),
    }
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
