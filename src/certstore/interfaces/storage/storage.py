"""Hierarchical key-value storage interface.

This module defines the backend-agnostic `Storage` port used by the
certificate cache to persist certificates, keys and metadata, plus the
`KeyInfo` DTO returned by `Storage.stat`.

Contract overview
-----------------
Keys:
- Non-empty ``/``-separated paths (see `certstore.interfaces.storage.keys`).
- Storing ``a/b/c`` makes it **terminal** and implies the **non-terminal**
  (directory) ancestors ``a`` and ``a/b``. Directories are never stored.

Values:
- Arbitrary bytes. ``None`` and ``b""`` both store an empty value.
- `store` overwrites atomically: a concurrent `load` sees the old or the new
  value in full, never a partial write.

Reads:
- `load` only succeeds for terminal keys.
- `stat` succeeds for terminal and directory keys; `KeyInfo.key` echoes the
  queried key exactly.
- `list` returns immediate children (or, recursively, every descendant
  including directory keys), each as a full key, never the listed key itself.

Locks:
- Named advisory locks share the key namespace but are independent of
  stored values: they are not listed, and `delete` does not release them.
- `lock` blocks for at most the backend's lock timeout, then raises
  `LockTimeout`; callers retry. `unlock` of a lock the caller does not hold
  raises `NotLocked`.

Cancellation:
- Every operation takes a keyword-only ``ctx``. A cancelled or expired
  context makes the call return promptly with `Cancelled`.

Errors:
- `InvalidKey`, `NotFound`, `LockTimeout`, `NotLocked`, `Cancelled`,
  `StorageUnavailable` (see `certstore.interfaces.storage.errors`).
- Only `exists` swallows failures: I/O errors and absence both yield False.

Mixed use:
- A key that is stored *and* is the ancestor of another stored key is
  reported terminal; its children remain listable.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime

from .context import Context


@dataclass(frozen=True)
class KeyInfo:
    """Metadata about a key, as returned by `Storage.stat`.

    Attributes:
        key: The queried key, verbatim.
        is_terminal: True for stored keys, False for implied directories.
        size: Value size in bytes (0 for directories).
        modified: Last modification time (UTC, tz-aware) if the backend tracks it.
    """

    key: str
    is_terminal: bool
    size: int = 0
    modified: datetime | None = None


class Storage(abc.ABC):
    """Hierarchical key-value store with advisory locks.

    Attributes:
        lock_timeout: Seconds `lock` waits for a contended lock before raising
            `LockTimeout`.
    """

    lock_timeout: float

    # --- Values ---

    @abc.abstractmethod
    def exists(self, key: str, *, ctx: Context | None = None) -> bool:
        """Return True if `key` exists as a terminal or directory key.

        Never raises: invalid keys, absent keys and backend failures all
        return False.
        """

    @abc.abstractmethod
    def store(
        self, key: str, value: bytes | None, *, ctx: Context | None = None
    ) -> None:
        """Store `value` under `key`, replacing any previous value.

        Args:
            key: Target key.
            value: Bytes to store; None is stored as an empty value.
            ctx: Optional cancellation context.

        Raises:
            InvalidKey: If `key` is malformed (e.g. empty).
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """

    @abc.abstractmethod
    def load(self, key: str, *, ctx: Context | None = None) -> bytes:
        """Return the value stored under `key`.

        Raises:
            NotFound: If `key` is absent or is a directory key.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """

    @abc.abstractmethod
    def delete(self, key: str, *, ctx: Context | None = None) -> None:
        """Delete the terminal entry at `key`.

        Siblings and descendants are untouched; locks are not released.

        Raises:
            NotFound: If there is no terminal entry at `key`.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """

    @abc.abstractmethod
    def stat(self, key: str, *, ctx: Context | None = None) -> KeyInfo:
        """Return metadata for a terminal or directory key.

        Raises:
            NotFound: If `key` does not exist.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """

    @abc.abstractmethod
    def list(
        self, key: str, recursive: bool = False, *, ctx: Context | None = None
    ) -> list[str]:
        """List the keys below `key`.

        Args:
            key: The key to list.
            recursive: If False, only immediate children; otherwise every
                descendant, directories included.
            ctx: Optional cancellation context.

        Returns:
            list[str]: Full keys without duplicates. Order is unspecified.

        Raises:
            NotFound: If `key` does not exist.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """

    # --- Locks ---

    @abc.abstractmethod
    def lock(self, key: str, *, ctx: Context | None = None) -> None:
        """Acquire the named lock, blocking up to the backend's lock timeout.

        Raises:
            LockTimeout: If the lock stays contended past the timeout.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled while waiting.
            StorageUnavailable: On backend failure.
        """

    @abc.abstractmethod
    def unlock(self, key: str, *, ctx: Context | None = None) -> None:
        """Release the named lock.

        Raises:
            NotLocked: If the caller does not hold the lock.
            InvalidKey: If `key` is malformed.
            Cancelled: If `ctx` is cancelled.
            StorageUnavailable: On backend failure.
        """
