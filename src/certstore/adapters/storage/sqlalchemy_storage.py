"""SQLAlchemy-backed storage adapter.

Stores terminal keys as rows of `storage_entries` and derives directory keys
from key prefixes, so its hierarchy behaves exactly like `MemoryStorage`.
Locks are rows of `storage_locks`: acquiring inserts a row (a conflicting
insert is a no-op), releasing deletes the row owned by this instance. Rows
carry an expiry so a crashed holder cannot block other processes forever.

Supports PostgreSQL and file-backed SQLite (see
`certstore.infrastructure.db.engine.make_engine` for the SQLite PRAGMAs this
relies on). Every operation runs in its own short transaction; driver errors
surface as `StorageUnavailable`.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError

from certstore.adapters.db.dialects import DialectName, UnsupportedDialect
from certstore.adapters.id_generators import new_owner_token
from certstore.config import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_LOCK_TTL,
    DEFAULT_POLL_INTERVAL,
)
from certstore.interfaces.storage import (
    Context,
    InvalidKey,
    KeyInfo,
    LockTimeout,
    NotFound,
    NotLocked,
    Storage,
    StorageUnavailable,
)
from certstore.interfaces.storage import keys as keyspace
from certstore.interfaces.storage.context import check, sleep

from .schema import MAX_KEY_LENGTH, storage_entries, storage_locks

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.sql.dml import Insert
    from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)


@contextmanager
def _db_errors(operation: str, key: str) -> Iterator[None]:
    """Translate driver failures into `StorageUnavailable`."""
    try:
        yield
    except DBAPIError as e:
        raise StorageUnavailable(f"{operation}({key!r}) failed: {e.orig or e}") from e


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlAlchemyStorage(Storage):
    """`Storage` implementation for PostgreSQL and SQLite via SQLAlchemy Core.

    The tables must already exist (run ``certstore db upgrade``).

    Args:
        engine: Engine for the target database.
        lock_timeout: Seconds `lock()` waits for a contended lock.
        poll_interval: Seconds between attempts to take a contended lock.
        lock_ttl: Seconds a lock row stays valid before another owner may
            take it over.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lock_ttl: float = DEFAULT_LOCK_TTL,
    ) -> None:
        self.engine = engine
        self.dialect = DialectName.from_sqlalchemy(engine)
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self.lock_ttl = lock_ttl
        self._owner = new_owner_token()

    # --- Values ---

    def exists(self, key: str, *, ctx: Context | None = None) -> bool:
        if not keyspace.is_valid_key(key) or len(key) > MAX_KEY_LENGTH:
            return False
        try:
            with self.engine.connect() as conn:
                return self._present(conn, key)
        except DBAPIError as e:
            logger.warning("exists(%r) failed: %s", key, e.orig or e)
            return False

    def store(
        self, key: str, value: bytes | None, *, ctx: Context | None = None
    ) -> None:
        self._validate(key)
        check(ctx)
        data = bytes(value or b"")
        with _db_errors("store", key), self.engine.begin() as conn:
            conn.execute(self._build_upsert(key, data, _utcnow()))

    def load(self, key: str, *, ctx: Context | None = None) -> bytes:
        self._validate(key)
        check(ctx)
        stmt = select(storage_entries.c.value).where(storage_entries.c.key == key)
        with _db_errors("load", key), self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            raise NotFound(key)
        return bytes(row.value)

    def delete(self, key: str, *, ctx: Context | None = None) -> None:
        self._validate(key)
        check(ctx)
        stmt = delete(storage_entries).where(storage_entries.c.key == key)
        with _db_errors("delete", key), self.engine.begin() as conn:
            deleted = conn.execute(stmt).rowcount
        if deleted == 0:
            raise NotFound(key)

    def stat(self, key: str, *, ctx: Context | None = None) -> KeyInfo:
        self._validate(key)
        check(ctx)
        stmt = select(storage_entries.c.size, storage_entries.c.modified).where(
            storage_entries.c.key == key
        )
        with _db_errors("stat", key), self.engine.connect() as conn:
            if (row := conn.execute(stmt).fetchone()) is not None:
                return KeyInfo(
                    key=key,
                    is_terminal=True,
                    size=int(row.size),
                    modified=row.modified,
                )
            is_dir = conn.execute(select(exists().where(self._below(key)))).scalar()
        if not is_dir:
            raise NotFound(key)
        return KeyInfo(key=key, is_terminal=False)

    def list(
        self, key: str, recursive: bool = False, *, ctx: Context | None = None
    ) -> list[str]:
        self._validate(key)
        check(ctx)
        stmt = select(storage_entries.c.key).where(self._below(key))
        with _db_errors("list", key), self.engine.connect() as conn:
            if not self._present(conn, key):
                raise NotFound(key)
            stored = conn.execute(stmt).scalars().all()
        return keyspace.list_descendants(key, stored, recursive)

    # --- Locks ---

    def lock(self, key: str, *, ctx: Context | None = None) -> None:
        self._validate(key)
        check(ctx)
        deadline = time.monotonic() + self.lock_timeout
        while True:
            if self._try_lock(key):
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeout(key, self.lock_timeout)
            sleep(ctx, min(self.poll_interval, remaining))

    def unlock(self, key: str, *, ctx: Context | None = None) -> None:
        self._validate(key)
        check(ctx)
        stmt = delete(storage_locks).where(
            storage_locks.c.key == key,
            storage_locks.c.owner == self._owner,
        )
        with _db_errors("unlock", key), self.engine.begin() as conn:
            released = conn.execute(stmt).rowcount
        if released == 0:
            raise NotLocked(key)

    # --- Internal Helpers ---

    @staticmethod
    def _validate(key: str) -> None:
        keyspace.validate_key(key)
        if len(key) > MAX_KEY_LENGTH:
            raise InvalidKey(key, f"longer than {MAX_KEY_LENGTH} characters")

    @staticmethod
    def _below(key: str) -> ColumnElement[bool]:
        """Rows whose key lies strictly below `key`."""
        return storage_entries.c.key.startswith(
            key + keyspace.SEPARATOR, autoescape=True
        )

    def _present(self, conn: Connection, key: str) -> bool:
        """True if `key` is stored or is an ancestor of a stored key."""
        stmt = select(
            exists().where(or_(storage_entries.c.key == key, self._below(key)))
        )
        return bool(conn.execute(stmt).scalar())

    def _try_lock(self, key: str) -> bool:
        """Make one attempt at taking the lock; True if this instance got it."""
        now = _utcnow()
        expired = delete(storage_locks).where(
            storage_locks.c.key == key,
            storage_locks.c.expires <= now,
        )
        with _db_errors("lock", key), self.engine.begin() as conn:
            if conn.execute(expired).rowcount:
                logger.warning("Took over expired lock %r", key)
            stmt = self._build_no_throw_insert(
                key, now + timedelta(seconds=self.lock_ttl)
            )
            return conn.execute(stmt).rowcount == 1  # pragma: no mutate

    # --- Dialect-specific statement builders ---

    def _build_upsert(self, key: str, data: bytes, modified: datetime) -> Insert:
        values = {"key": key, "value": data, "size": len(data), "modified": modified}
        update = {"value": data, "size": len(data), "modified": modified}
        if self.dialect is DialectName.POSTGRES:
            return (
                pg_insert(storage_entries)
                .values(**values)
                .on_conflict_do_update(index_elements=["key"], set_=update)
            )
        if self.dialect is DialectName.SQLITE:
            return (
                sqlite_insert(storage_entries)
                .values(**values)
                .on_conflict_do_update(index_elements=["key"], set_=update)
            )
        msg = f"Unsupported dialect: {self.dialect}"  # pragma: no cover
        raise UnsupportedDialect(msg)  # pragma: no cover

    def _build_no_throw_insert(self, key: str, expires: datetime) -> Insert:
        values = {"key": key, "owner": self._owner, "expires": expires}
        if self.dialect is DialectName.POSTGRES:
            return pg_insert(storage_locks).values(**values).on_conflict_do_nothing()
        if self.dialect is DialectName.SQLITE:
            return (
                sqlite_insert(storage_locks).values(**values).on_conflict_do_nothing()
            )
        msg = f"Unsupported dialect: {self.dialect}"  # pragma: no cover
        raise UnsupportedDialect(msg)  # pragma: no cover
