"""
kv/store.py -- Key-value backends behind the credential store adapter.

The auth service only ever needs point reads and writes on opaque string
keys, so the contract is deliberately small:

    store.exists("user:alice")              # -> bool
    store.get("user:alice")                 # -> str | None
    store.set("user:alice", "{...}")        # overwrite
    store.set_if_absent("user:alice", "{...}")  # -> False if the key existed
    store.delete("user:alice")

Two implementations:

  RedisStore -- redis-py client. Production backend. Connect and socket
      timeouts are always set so a dead Redis fails fast instead of hanging
      a request thread.

  SQLStore -- SQLAlchemy Core, one two-column table. Useful for local
      development (SQLite file) and tests (shared-memory SQLite), or for
      deployments that already run PostgreSQL.

open_store(url) chooses between them by URL scheme.

Failure model: any driver-level error (connection refused, timeout, lock
contention) is re-raised as core.errors.InfrastructureError. No retries --
the caller sees one failure per failed round trip.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import logging
from typing import Protocol

import redis
from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import SingletonThreadPool

from core.errors import InfrastructureError

logger = logging.getLogger("credvault.store")

_REDIS_SCHEMES = ("redis://", "rediss://", "unix://")


class KeyValueStore(Protocol):
    """Structural interface implemented by every backend."""

    def exists(self, key: str) -> bool: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def set_if_absent(self, key: str, value: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisStore:
    """KeyValueStore over a redis-py client.

    Usage:
        store = RedisStore.from_url("redis://localhost:6379/0")
        store.set("user:alice", payload)
        store.close()

    The client is injected so tests can pass a mock; from_url() builds the
    real one with timeouts and decoded (str) responses.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, connect_timeout: float = 5.0, socket_timeout: float = 5.0) -> RedisStore:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=socket_timeout,
        )
        logger.info("Redis store configured (%s)", _mask_url(url))
        return cls(client)

    def exists(self, key: str) -> bool:
        try:
            return self._client.exists(key) > 0
        except redis.RedisError as e:
            raise _backend_error("exists", e) from e

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            raise _backend_error("get", e) from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except redis.RedisError as e:
            raise _backend_error("set", e) from e

    def set_if_absent(self, key: str, value: str) -> bool:
        """SET key value NX. redis-py returns True on write, None if the key existed."""
        try:
            return bool(self._client.set(key, value, nx=True))
        except redis.RedisError as e:
            raise _backend_error("set_if_absent", e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            raise _backend_error("delete", e) from e

    def ping(self) -> bool:
        """Return True if Redis answers PING. Never raises -- used by /health."""
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            logger.warning("Redis ping failed", exc_info=True)
            return False

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------

_metadata = MetaData()

_kv_entries = Table(
    "kv_entries",
    _metadata,
    Column("key", String(512), primary_key=True),
    Column("value", Text, nullable=False),
)


def _is_memory_sqlite(db_url: str) -> bool:
    return "mode=memory" in db_url or ":memory:" in db_url or db_url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class SQLStore:
    """KeyValueStore over a single SQLAlchemy Core table.

    Usage:
        store = SQLStore("sqlite:///credvault.db")
        store.set_if_absent("user:alice", payload)
        store.close()

    All queries use bound parameters. The primary key on `key` is what
    makes set_if_absent() atomic: a concurrent duplicate INSERT fails with
    IntegrityError instead of overwriting.
    """

    def __init__(self, db_url: str) -> None:
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(db_url):
                # One connection per thread; the shared-cache database lives
                # as long as any of them stays open.
                engine_kwargs["poolclass"] = SingletonThreadPool
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite") and not _is_memory_sqlite(db_url):
            event.listen(self.engine, "connect", _set_wal_mode)
        try:
            _metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise _backend_error("create_all", e) from e
        logger.info("SQL store configured (%s)", self.engine.url.render_as_string(hide_password=True))

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> str | None:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(select(_kv_entries.c.value).where(_kv_entries.c.key == key)).fetchone()
        except SQLAlchemyError as e:
            raise _backend_error("get", e) from e
        return row[0] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Upsert: UPDATE first, INSERT if nothing was updated."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_kv_entries.update().where(_kv_entries.c.key == key).values(value=value))
                if result.rowcount == 0:
                    conn.execute(_kv_entries.insert().values(key=key, value=value))
                conn.commit()
        except SQLAlchemyError as e:
            raise _backend_error("set", e) from e

    def set_if_absent(self, key: str, value: str) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(_kv_entries.insert().values(key=key, value=value))
                conn.commit()
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise _backend_error("set_if_absent", e) from e
        return True

    def delete(self, key: str) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(_kv_entries.delete().where(_kv_entries.c.key == key))
                conn.commit()
        except SQLAlchemyError as e:
            raise _backend_error("delete", e) from e

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("SQL store ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Factory and helpers
# ---------------------------------------------------------------------------


def open_store(url: str, connect_timeout: float = 5.0, socket_timeout: float = 5.0) -> KeyValueStore:
    """Build the backend that matches the URL scheme."""
    if url.startswith(_REDIS_SCHEMES):
        return RedisStore.from_url(url, connect_timeout=connect_timeout, socket_timeout=socket_timeout)
    return SQLStore(url)


def _backend_error(operation: str, exc: Exception) -> InfrastructureError:
    # The driver message may contain hostnames; it goes to the log only.
    logger.error("Store %s failed: %s", operation, exc)
    return InfrastructureError()


def _mask_url(url: str) -> str:
    """Hide the password portion of a redis URL for logging."""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    creds, _, host = rest.rpartition("@")
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"
