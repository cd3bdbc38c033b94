"""
api/routes/auth.py -- Registration and login REST endpoints.

Routes:
  POST /auth/register   -- create a user; 200, 409 if taken, 400 on bad input
  POST /auth/login      -- verify credentials; 200 with bearer token, 401
  GET  /auth/me         -- identity behind a bearer token (requires auth)

Handlers are plain `def`, not `async def`: bcrypt is CPU-bound and
Starlette runs sync handlers in its thread pool, keeping the event loop free.

Failures are raised as core.errors exceptions (AlreadyExists,
InvalidCredentials, InfrastructureError) and rendered by the single
handler in api/main.py, so every error response has the same shape.

Security:
  Login returns the same 401 body for unknown user and wrong password.
  Cache-Control: no-store on register and login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import AuthResponse, ErrorResponse, LoginRequest, MeResponse, RegisterRequest, RegisterResponse
from auth.dependencies import get_auth_service, get_current_username
from auth.service import AuthService

router = APIRouter()


@router.post(
    "/auth/register",
    response_model=RegisterResponse,
    summary="Register a new user",
    responses={
        400: {"model": ErrorResponse, "description": "Validation error"},
        409: {"model": ErrorResponse, "description": "Username already exists"},
    },
)
def register(
    body: RegisterRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    registration = service.register(body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return RegisterResponse(username=registration.username)


@router.post(
    "/auth/login",
    response_model=AuthResponse,
    summary="Authenticate user and get JWT token",
    responses={
        400: {"model": ErrorResponse, "description": "Validation error"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
)
def login(
    body: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with username and password and return a bearer token.

    Returns the same generic error for wrong username and wrong password
    to avoid leaking username existence information.
    """
    issued = service.authenticate(body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(token=issued.token, username=issued.username)


@router.get(
    "/auth/me",
    response_model=MeResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing or invalid token"}},
)
def me(username: str = Depends(get_current_username)) -> MeResponse:
    """Return the username the presented bearer token was issued to."""
    return MeResponse(username=username)
