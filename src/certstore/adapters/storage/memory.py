"""In-memory storage backend.

This module provides the reference implementation of the `Storage` contract.
Everything lives in RAM; there is no persistence across process restarts.
It is meant for **tests**, examples, and as the yardstick other backends are
compared against.

Exports
-------
- MemoryStorage: Concrete `Storage` backed by an in-memory dict.

Key behaviors
-------------
- **Terminal keys only**: only stored keys are kept. Directory keys are
  derived from a per-ancestor reference count maintained on `store`/`delete`,
  so a directory disappears once its last descendant is deleted.
- **Atomic overwrite**: values are immutable `bytes` swapped under a lock, so
  a reader sees either the old or the new value.
- **Locks**: a `threading.Condition` guards the set of held lock names.
  `lock()` waits on the condition until the name is free, the lock timeout
  passes (`LockTimeout`), or the context is cancelled (`Cancelled`).
- **Thread-safety**: values and locks each have their own guard; no
  operation holds both.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from certstore.config import DEFAULT_LOCK_TIMEOUT, DEFAULT_POLL_INTERVAL
from certstore.interfaces.storage import (
    Cancelled,
    Context,
    KeyInfo,
    LockTimeout,
    NotFound,
    NotLocked,
    Storage,
)
from certstore.interfaces.storage import keys as keyspace
from certstore.interfaces.storage.context import check

__all__ = ["MemoryStorage"]


@dataclass(frozen=True)
class _Entry:
    value: bytes
    modified: datetime


class MemoryStorage(Storage):
    """In-memory `Storage` backend.

    Args:
        lock_timeout: Seconds `lock()` waits for a contended lock.
        poll_interval: Upper bound on a single wait while blocked in `lock()`,
            so cancellation of the caller's context is noticed promptly.

    Example
    -------
        storage = MemoryStorage()
        storage.store("acme/example.com/cert.pem", b"-----BEGIN...")
        storage.list("acme")  # ["acme/example.com"]
    """

    def __init__(
        self,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self._entries: dict[str, _Entry] = {}
        self._dirs: Counter[str] = Counter()
        self._data_lock = threading.RLock()
        self._held: set[str] = set()
        self._lock_cond = threading.Condition()

    # ---- Storage: values ----

    def exists(self, key: str, *, ctx: Context | None = None) -> bool:
        if not keyspace.is_valid_key(key):
            return False
        with self._data_lock:
            return key in self._entries or key in self._dirs

    def store(
        self, key: str, value: bytes | None, *, ctx: Context | None = None
    ) -> None:
        keyspace.validate_key(key)
        check(ctx)
        entry = _Entry(bytes(value or b""), datetime.now(timezone.utc))
        with self._data_lock:
            if key not in self._entries:
                self._dirs.update(keyspace.ancestors(key))
            self._entries[key] = entry

    def load(self, key: str, *, ctx: Context | None = None) -> bytes:
        keyspace.validate_key(key)
        check(ctx)
        with self._data_lock:
            try:
                return self._entries[key].value
            except KeyError as e:
                raise NotFound(key) from e

    def delete(self, key: str, *, ctx: Context | None = None) -> None:
        keyspace.validate_key(key)
        check(ctx)
        with self._data_lock:
            if self._entries.pop(key, None) is None:
                raise NotFound(key)
            for ancestor in keyspace.ancestors(key):
                self._dirs[ancestor] -= 1
                if self._dirs[ancestor] <= 0:
                    del self._dirs[ancestor]

    def stat(self, key: str, *, ctx: Context | None = None) -> KeyInfo:
        keyspace.validate_key(key)
        check(ctx)
        with self._data_lock:
            if (entry := self._entries.get(key)) is not None:
                return KeyInfo(
                    key=key,
                    is_terminal=True,
                    size=len(entry.value),
                    modified=entry.modified,
                )
            if key in self._dirs:
                return KeyInfo(key=key, is_terminal=False)
        raise NotFound(key)

    def list(
        self, key: str, recursive: bool = False, *, ctx: Context | None = None
    ) -> list[str]:
        keyspace.validate_key(key)
        check(ctx)
        with self._data_lock:
            if key not in self._entries and key not in self._dirs:
                raise NotFound(key)
            stored = tuple(self._entries)
        return keyspace.list_descendants(key, stored, recursive)

    # ---- Storage: locks ----

    def lock(self, key: str, *, ctx: Context | None = None) -> None:
        keyspace.validate_key(key)
        check(ctx)
        deadline = time.monotonic() + self.lock_timeout
        with self._lock_cond:
            while key in self._held:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockTimeout(key, self.lock_timeout)
                if ctx is not None and ctx.cancelled:
                    raise Cancelled(f"cancelled while waiting for lock {key!r}")
                self._lock_cond.wait(min(remaining, self.poll_interval))
            self._held.add(key)

    def unlock(self, key: str, *, ctx: Context | None = None) -> None:
        keyspace.validate_key(key)
        check(ctx)
        with self._lock_cond:
            if key not in self._held:
                raise NotLocked(key)
            self._held.remove(key)
            self._lock_cond.notify_all()
