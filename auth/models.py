"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class + Data Mapper. The dataclasses own domain shape;
user_to_record / record_to_user translate to and from the JSON document
persisted in the key-value store.

Persisted record (one per user, key "user:<username>"):
    {"username": "alice", "passwordHash": "$2b$10$...", "createdAt": "2026-...Z"}

The camelCase field names are part of the storage format -- records
written by earlier deployments use them, so they must not change.

Layer rule: no imports from api/ or kv/.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from core.errors import InfrastructureError

USER_KEY_PREFIX = "user:"


def user_key(username: str) -> str:
    """Store key for a username. Case-sensitive: "Alice" and "alice" are different users."""
    return f"{USER_KEY_PREFIX}{username}"


@dataclass(frozen=True)
class User:
    """A registered identity. Never mutated after registration."""

    username: str
    password_hash: str
    created_at: str


@dataclass(frozen=True)
class Registration:
    """Result of a successful AuthService.register() call."""

    username: str


@dataclass(frozen=True)
class IssuedToken:
    """Result of a successful AuthService.authenticate() call."""

    token: str
    username: str
    expires_in: int  # seconds


def user_to_record(user: User) -> str:
    return json.dumps(
        {
            "username": user.username,
            "passwordHash": user.password_hash,
            "createdAt": user.created_at,
        }
    )


def record_to_user(record: str) -> User:
    """Deserialize a stored record.

    A record that is not a JSON object, lacks a field, or holds a non-string
    username or hash is corrupt data, not a credential mismatch, so it
    surfaces as InfrastructureError.
    """
    try:
        data = json.loads(record)
    except ValueError as e:
        raise InfrastructureError() from e
    if not isinstance(data, dict):
        raise InfrastructureError()

    username = data.get("username")
    password_hash = data.get("passwordHash")
    created_at = data.get("createdAt", "")
    if not isinstance(username, str) or not username or not isinstance(password_hash, str):
        raise InfrastructureError()
    return User(
        username=username,
        password_hash=password_hash,
        created_at=created_at if isinstance(created_at, str) else "",
    )
