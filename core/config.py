"""
core/config.py -- Runtime settings for credvault.

Every knob the service reads from the environment (or a .env file) is a
field on Settings; get_settings() hands out one cached instance.

    SECRET_KEY            HS256 signing key for issued tokens
    TOKEN_EXPIRE_SECONDS  token lifetime, either seconds or "30m" / "1h" / "1d"
    BCRYPT_ROUNDS         cost factor for new password hashes (4..31)
    STORE_URL             redis:// selects Redis; any other URL goes to SQLAlchemy
    STORE_CONNECT_TIMEOUT / STORE_SOCKET_TIMEOUT
                          seconds before a store round trip gives up
    LOG_LEVEL, DEBUG

Validation runs at construction, so a bad duration, an unknown log level or
a missing signing key stops the process at startup rather than on the
first login.

Layer rule: core/ may not import from api/, auth/, or kv/.
"""

import logging
import re
import secrets
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("credvault.config")

# "90", "90s", "30m", "1h", "7d" -- the duration forms accepted for token expiry.
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Convert a duration such as "1h" or "3600" to whole seconds.

    Raises ValueError on anything else, including zero.
    """
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(value.lower())
        if match is None:
            raise ValueError(f"Invalid duration {value!r}. Use e.g. 3600, 45s, 30m, 1h or 1d.")
        seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError("Duration must be positive.")
    return seconds


class Settings(BaseSettings):
    """Token, hashing and credential-store settings.

    Everything except SECRET_KEY has a working default (a local Redis, one
    hour tokens, bcrypt cost 10).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Default 1 hour. Accepts plain seconds or a suffixed form ("1h").
    token_expire_seconds: int = 3600
    # Cost 10 matches records written by earlier deployments.
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    # redis://, rediss:// and unix:// select Redis; anything else is handed
    # to SQLAlchemy (e.g. sqlite:///credvault.db, postgresql://...).
    store_url: str = "redis://localhost:6379/0"
    store_connect_timeout: float = 5.0
    store_socket_timeout: float = 5.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("token_expire_seconds", mode="before")
    @classmethod
    def parse_token_expiry(cls, value: str | int) -> int:
        return parse_duration(value)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level {value!r}.")
        return level

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Every issued token is signed with SECRET_KEY, so it must be stable and long.

        With DEBUG=true a missing key is replaced by a random one; tokens then
        stop verifying whenever the process restarts. Without DEBUG a missing
        key is a startup error. Keys under 32 characters are always refused.
        """
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(32)
            logger.warning("No SECRET_KEY set; signing tokens with a throwaway key for this process only.")
        elif not self.secret_key:
            raise ValueError("SECRET_KEY must be set to sign tokens (or set DEBUG=true for a throwaway key).")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Settings for this process, read from the environment on first call.

    Changing STORE_URL or TOKEN_EXPIRE_SECONDS after that has no effect
    until get_settings.cache_clear() is called.
    """
    return Settings()
