"""
API request and response models for credvault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

All input validation happens here, before the auth service is invoked:
empty usernames, empty passwords, and (on registration) the password policy.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH = 8
# bcrypt ignores everything past 72 bytes; refuse longer input instead.
PASSWORD_MAX_LENGTH = 72

_POLICY_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(r"[^A-Za-z0-9]"), "Password must contain at least one special character"),
]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    Only non-emptiness is checked -- applying the registration policy here
    would tell a caller something about which passwords cannot exist.
    """

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=255, examples=["john_doe"])
    password: str = Field(min_length=1, max_length=255, examples=["SecurePass123!"])

    @field_validator("username")
    @classmethod
    def username_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Username cannot be empty")
        return value


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=1, max_length=255, examples=["john_doe"])
    password: str = Field(
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        examples=["SecurePass123!"],
    )

    @field_validator("username")
    @classmethod
    def username_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Username cannot be empty")
        return value

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        # max_length above counts characters; bcrypt's limit is in bytes.
        if len(value.encode("utf-8")) > PASSWORD_MAX_LENGTH:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} bytes")
        for pattern, message in _POLICY_RULES:
            if not pattern.search(value):
                raise ValueError(message)
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class RegisterResponse(BaseModel):
    """Response for POST /auth/register."""

    model_config = ConfigDict(frozen=True)

    message: str = "User registered successfully"
    username: str


class AuthResponse(BaseModel):
    """Response for POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(examples=["eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9..."])
    username: str


class MeResponse(BaseModel):
    """Response for GET /auth/me."""

    model_config = ConfigDict(frozen=True)

    username: str


class ErrorResponse(BaseModel):
    """Error body returned on every 4xx/5xx response.

    Field names are camelCase on the wire to stay compatible with existing
    clients of this API.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    message: str
    error: str
    timestamp: str
    path: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
