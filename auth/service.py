"""
auth/service.py -- Registration and login workflow.

AuthService is constructed once (by the API lifespan or the CLI) with its
collaborators injected:

    service = AuthService(store, BcryptHasher(rounds=10), JWTSigner(),
                          secret_key=settings.secret_key, token_ttl=3600)
    service.register("alice", "Secret123!")
    issued = service.authenticate("alice", "Secret123!")
    service.verify_token(issued.token)   # -> "alice"

Each call is one linear sequence with a single branch point. There is no
in-process state besides the injected store handle and a dummy hash
computed at construction.

Security:
  Anti-enumeration: an unknown username and a wrong password raise the
  same InvalidCredentials with the same message. An unknown username also
  pays for one hash verification against a dummy digest, so response time
  does not reveal whether the account exists either.

  Registration race: exists() is only a fast-fail before the expensive
  hash. The actual write is set_if_absent(), so two concurrent
  registrations of one username cannot both succeed.

Layer rule: no imports from api/. kv/ is reached only through the
KeyValueStore protocol passed in.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from auth.models import IssuedToken, Registration, User, record_to_user, user_key, user_to_record
from auth.passwords import BcryptHasher
from auth.tokens import JWTSigner
from core.errors import AlreadyExists, InvalidCredentials, InvalidToken

if TYPE_CHECKING:
    from auth.passwords import PasswordHasher
    from auth.tokens import TokenSigner
    from core.config import Settings
    from kv.store import KeyValueStore

logger = logging.getLogger("credvault.auth")

DEFAULT_TOKEN_TTL = 3600


class AuthService:
    def __init__(
        self,
        store: KeyValueStore,
        hasher: PasswordHasher,
        signer: TokenSigner,
        secret_key: str,
        token_ttl: int = DEFAULT_TOKEN_TTL,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.signer = signer
        self._secret_key = secret_key
        self.token_ttl = token_ttl
        # Computed up front so the first unknown-user login is not measurably slower.
        self._dummy_hash = hasher.hash("credvault_timing_dummy")

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: Settings) -> AuthService:
        """Production wiring: bcrypt at the configured cost, HS256 JWTs."""
        return cls(
            store,
            BcryptHasher(rounds=settings.bcrypt_rounds),
            JWTSigner(),
            secret_key=settings.secret_key,
            token_ttl=settings.token_expire_seconds,
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, username: str, password: str) -> Registration:
        """Create a user record. Raises AlreadyExists if the username is taken."""
        key = user_key(username)
        if self.store.exists(key):
            raise AlreadyExists()

        user = User(
            username=username,
            password_hash=self.hasher.hash(password),
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        if not self.store.set_if_absent(key, user_to_record(user)):
            # Another registration for the same name won between exists() and here.
            raise AlreadyExists()

        logger.info("Registered user %s", username)
        return Registration(username=username)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> IssuedToken:
        """Verify credentials and issue a signed token.

        Raises InvalidCredentials for an unknown user and for a wrong
        password alike.
        """
        record = self.store.get(user_key(username))
        if record is None:
            # Equalize timing -- do NOT return before running the hash check.
            self.hasher.verify(password, self._dummy_hash)
            raise InvalidCredentials()

        user = record_to_user(record)
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentials()

        token = self.signer.sign({"username": user.username}, self._secret_key, self.token_ttl)
        return IssuedToken(token=token, username=user.username, expires_in=self.token_ttl)

    def verify_token(self, token: str) -> str:
        """Return the username a token was issued to. Raises InvalidToken otherwise."""
        claims = self.signer.decode(token, self._secret_key)
        username = claims.get("username")
        if not isinstance(username, str) or not username:
            raise InvalidToken()
        return username

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def delete_user(self, username: str) -> bool:
        """Remove a user record. Returns False if there was nothing to delete.

        Not reachable over HTTP -- used by the CLI and test cleanup.
        """
        key = user_key(username)
        if not self.store.exists(key):
            return False
        self.store.delete(key)
        logger.info("Deleted user %s", username)
        return True
