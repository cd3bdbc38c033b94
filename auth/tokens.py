"""
auth/tokens.py -- Stateless bearer token signing and verification.

JWT: python-jose with HS256. The signer owns no key material of its own --
AuthService passes the configured SECRET_KEY on every call, so the signer
is a pure function of (claims, secret, ttl).

Issued tokens carry:
    username  -- the authenticated identity
    sub       -- same value, for standard JWT tooling
    iat, exp  -- issue and expiry times (UTC)

There is no session table: a token stays valid until its exp claim no
matter what happens to the account afterwards.

Layer rule: no imports from api/ or kv/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

from jose import JWTError, jwt

from core.errors import InvalidToken

ALGORITHM = "HS256"


class TokenSigner(Protocol):
    def sign(self, claims: dict, secret: str, ttl: int) -> str: ...

    def decode(self, token: str, secret: str) -> dict: ...


class JWTSigner:
    """HS256 JWT signer backed by python-jose."""

    algorithm = ALGORITHM

    def sign(self, claims: dict, secret: str, ttl: int) -> str:
        """Encode claims into a signed JWT that expires ttl seconds from now."""
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        if "username" in payload:
            payload.setdefault("sub", payload["username"])
        payload["iat"] = now
        payload["exp"] = now + timedelta(seconds=ttl)
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def decode(self, token: str, secret: str) -> dict:
        """Verify signature and expiry and return the claims.

        Raises InvalidToken on any failure -- expired, tampered, wrong
        algorithm, or not a JWT at all.
        """
        try:
            return jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidToken() from e
