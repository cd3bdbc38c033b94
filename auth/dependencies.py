"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_service() hands route handlers the AuthService built in the
lifespan (app.state.auth_service). Nothing reaches for a module-level
singleton; tests swap the service by patching the lifespan.

get_current_username() accepts an `Authorization: Bearer <token>` header,
verifies it statelessly, and returns the username.

Layer rule: auth/dependencies.py may import from fastapi because this
module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.service import AuthService
from core.errors import InvalidToken


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_username(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> str:
    """Require a valid bearer token. Raises InvalidToken (-> HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(username: str = Depends(get_current_username)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise InvalidToken("Authentication required")
    return service.verify_token(token)
