"""
auth/passwords.py -- Password hashing behind a small swappable interface.

AuthService depends on the PasswordHasher protocol only, so the algorithm
and cost factor can change without touching service logic.

BcryptHasher uses the bcrypt library directly (no passlib wrapper). passlib's
internal wrap-bug detection builds a password longer than 72 bytes, which
bcrypt 4.x rejects with an explicit error.

Both operations are CPU-bound and deliberately slow (cost 10 is ~50-100ms).
Callers on an event loop must run them in a worker thread; the FastAPI
routes do this by being plain `def` handlers.
"""

from __future__ import annotations

from typing import Protocol

import bcrypt

DEFAULT_ROUNDS = 10


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, digest: str) -> bool: ...


class BcryptHasher:
    """Salted bcrypt hashing with a fixed cost factor.

    Each call to hash() generates a fresh salt, so hashing the same password
    twice yields different digests that both verify.
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        bcrypt only reads the first 72 bytes. The API caps passwords at 72
        characters; longer byte strings (multibyte input) are truncated here
        rather than rejected, matching what bcrypt 3.x did silently.
        """
        return bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True if the plaintext matches the digest. Malformed digests return False."""
        try:
            return bcrypt.checkpw(_encode(plaintext), digest.encode("utf-8"))
        except ValueError:
            return False


def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:72]
