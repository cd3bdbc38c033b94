"""
api/main.py -- FastAPI application entry point for credvault.

Exposes the registration/login workflow over HTTP. The auth service and its
store are built once in the lifespan and injected into routes through
auth.dependencies.get_auth_service -- no route touches a global.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware (outermost first):
  1. log_requests -- one access line per request, plus an [AUDIT] line for
     every register/login attempt. Passwords are never logged.

Lifespan handles startup (open store, build AuthService) and shutdown
(close store) symmetrically.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from auth.service import AuthService
from core.config import get_settings
from core.errors import CredVaultError
from kv.store import open_store

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("credvault.api")
audit_logger = logging.getLogger("credvault.audit")

_AUDITED_PATHS = {"/auth/login": "LOGIN", "/auth/register": "REGISTER"}

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the credential store on startup and close it on shutdown.

    The store is opened before AuthService is built because the service
    takes it as a constructor argument.
    """
    settings = get_settings()
    logger.info("credvault API starting up")
    store = open_store(
        settings.store_url,
        connect_timeout=settings.store_connect_timeout,
        socket_timeout=settings.store_socket_timeout,
    )
    app.state.store = store
    app.state.auth_service = AuthService.from_settings(store, settings)
    logger.info(
        "Auth initialized (token ttl=%ds, bcrypt rounds=%d)",
        settings.token_expire_seconds,
        settings.bcrypt_rounds,
    )

    yield

    store.close()
    logger.info("credvault API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="credvault API",
    description="Username/password registration and bearer token issuance.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Captures wall-clock time around call_next so every response line carries
# its latency and the caller's user-agent. For the two credential endpoints
# the body is read to pull out the username for the audit line (and logged
# at DEBUG with the password redacted); Starlette caches the body so the
# route handler still receives it. Failed audit lines end with the error
# message that error_response() left on request.state.
# ---------------------------------------------------------------------------


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


async def _json_body(request: Request) -> dict:
    try:
        body = json.loads(await request.body())
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _redacted(body: dict) -> dict:
    return {k: ("[REDACTED]" if k == "password" else v) for k, v in body.items()}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    path = request.url.path
    event = _AUDITED_PATHS.get(path) if request.method == "POST" else None
    body = await _json_body(request) if event else {}
    username = body.get("username")
    if not isinstance(username, str) or not username:
        username = "unknown"
    ip = client_ip(request)
    user_agent = request.headers.get("user-agent", "unknown")
    if event:
        logger.debug("%s %s body=%s", request.method, path, json.dumps(_redacted(body)))

    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000

    logger.info("%s %s %d %.1fms %s %s", request.method, path, response.status_code, ms, ip, user_agent)
    if event:
        line = "[AUDIT] %s %s - Username: %s - IP: %s - Status: %d"
        args = [event, "SUCCESS" if 200 <= response.status_code < 300 else "FAILED", username, ip, response.status_code]
        error_message = getattr(request.state, "error_message", None)
        if error_message and response.status_code >= 400:
            line += " - Error: %s"
            args.append(error_message)
        audit_logger.info(line, *args)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])

# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same ErrorResponse body so clients can parse
# errors uniformly: {statusCode, message, error, timestamp, path}.
# ---------------------------------------------------------------------------


def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    # Read back by log_requests for the audit line.
    request.state.error_message = message
    body = ErrorResponse(
        status_code=status_code,
        message=message,
        error=HTTPStatus(status_code).phrase,
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=request.url.path,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


@app.exception_handler(CredVaultError)
async def credvault_error_handler(request: Request, exc: CredVaultError) -> JSONResponse:
    """Render AlreadyExists (409), InvalidCredentials (401) and InfrastructureError (503)."""
    return error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 listing each failed field as "field: reason"."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        msg = err.get("msg", "invalid").removeprefix("Value error, ")
        problems.append(f"{field}: {msg}" if field else msg)
    return error_response(request, 400, "; ".join(problems) or "Request validation failed.")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing-level errors (404, 405) in the same envelope."""
    return error_response(request, exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response
    body. The client receives a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(request, 500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. Reports the store separately so
# a load balancer can tell "process up, Redis down" from "process down".
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and credential store reachability."""
    store_ok = request.app.state.store.ping()
    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "store": "ok" if store_ok else "error"},
    )
