"""Local filesystem storage backend.

Layout under ``root``:

- ``keys/``: one file per terminal key, one directory per directory key
  (``a/b/c`` lives at ``keys/a/b/c``).
- ``tmp/``: staging area; values are written here, fsynced, then moved
  into place with `os.replace` so readers never see partial writes.
- ``locks/``: one ``<quoted key>.lock`` file per held lock, created with
  ``O_CREAT | O_EXCL`` so exactly one process wins. The file holds JSON
  metadata (owner token, pid, creation time). Lock files older than
  ``stale_after`` seconds are treated as abandoned and removed.

Deleting a key also removes parent directories left empty, so a directory key
exists exactly while something is stored below it. A key cannot be both a
file and a directory here; storing below a terminal key, or at a directory
key, fails with `StorageUnavailable`.
"""

from __future__ import annotations

import json
import logging
import os
import stat as stat_mode
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote

from certstore.adapters.id_generators import new_owner_token
from certstore.config import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STALE_AFTER,
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

PathLike = str | os.PathLike[str]

logger = logging.getLogger(__name__)

# errors meaning "nothing usable lives at this path"
_MISSING = (FileNotFoundError, NotADirectoryError, IsADirectoryError)

_MOVE_ATTEMPTS = 5


class LocalStorage(Storage):
    """`Storage` implementation that uses the local filesystem.

    Safe for concurrent use by threads and by separate processes sharing
    the same ``root``.

    Args:
        root: Directory holding the store; created if missing.
        lock_timeout: Seconds `lock()` waits for a contended lock.
        poll_interval: Seconds between attempts to create a contended lock file.
        stale_after: Age in seconds after which a lock file is broken.
    """

    def __init__(
        self,
        root: PathLike,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stale_after: float = DEFAULT_STALE_AFTER,
    ) -> None:
        self._root = Path(root)
        self._keys_dir = self._root / "keys"
        self._locks_dir = self._root / "locks"
        self._tmp_dir = self._root / "tmp"
        for directory in (self._keys_dir, self._locks_dir, self._tmp_dir):
            directory.mkdir(parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        self._owner = new_owner_token()

    @property
    def root(self) -> Path:
        """Directory holding the store."""
        return self._root

    # --- Values ---

    def exists(self, key: str, *, ctx: Context | None = None) -> bool:
        try:
            path = self._key_path(key)
        except InvalidKey:
            return False
        try:
            return path.exists()
        except OSError as e:
            logger.warning("exists(%r) failed: %s", key, e)
            return False

    def store(
        self, key: str, value: bytes | None, *, ctx: Context | None = None
    ) -> None:
        path = self._key_path(key)
        check(ctx)
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(dir=self._tmp_dir, delete=False) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(value or b"")
                tmp.flush()
                os.fsync(tmp.fileno())
            self._move_into_place(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise StorageUnavailable(f"store({key!r}) failed: {e}") from e

    def load(self, key: str, *, ctx: Context | None = None) -> bytes:
        path = self._key_path(key)
        check(ctx)
        try:
            return path.read_bytes()
        except _MISSING as e:
            raise NotFound(key) from e
        except OSError as e:
            raise StorageUnavailable(f"load({key!r}) failed: {e}") from e

    def delete(self, key: str, *, ctx: Context | None = None) -> None:
        path = self._key_path(key)
        check(ctx)
        if path.is_dir():
            raise NotFound(key)
        try:
            path.unlink()
        except _MISSING as e:
            raise NotFound(key) from e
        except OSError as e:
            raise StorageUnavailable(f"delete({key!r}) failed: {e}") from e
        self._prune_empty_parents(path)

    def stat(self, key: str, *, ctx: Context | None = None) -> KeyInfo:
        path = self._key_path(key)
        check(ctx)
        st = self._stat_path(key, path)
        is_dir = stat_mode.S_ISDIR(st.st_mode)
        return KeyInfo(
            key=key,
            is_terminal=not is_dir,
            size=0 if is_dir else st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def list(
        self, key: str, recursive: bool = False, *, ctx: Context | None = None
    ) -> list[str]:
        path = self._key_path(key)
        check(ctx)
        if not stat_mode.S_ISDIR(self._stat_path(key, path).st_mode):
            return []
        try:
            if not recursive:
                children = path.iterdir()
                return sorted(keyspace.join(key, child.name) for child in children)
            found: list[str] = []
            for dirpath, dirnames, filenames in os.walk(path):
                relative = Path(dirpath).relative_to(path).parts
                for name in (*dirnames, *filenames):
                    found.append(keyspace.join(key, *relative, name))
        except FileNotFoundError as e:
            raise NotFound(key) from e
        except OSError as e:
            raise StorageUnavailable(f"list({key!r}) failed: {e}") from e
        return sorted(found)

    # --- Locks ---

    def lock(self, key: str, *, ctx: Context | None = None) -> None:
        keyspace.validate_key(key)
        check(ctx)
        path = self._lock_path(key)
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._break_if_stale(path):
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LockTimeout(key, self.lock_timeout) from None
                sleep(ctx, min(self.poll_interval, remaining))
                continue
            except OSError as e:
                raise StorageUnavailable(f"lock({key!r}) failed: {e}") from e
            self._write_lock_meta(key, path, fd)
            return

    def unlock(self, key: str, *, ctx: Context | None = None) -> None:
        keyspace.validate_key(key)
        check(ctx)
        path = self._lock_path(key)
        if self._read_lock_meta(path).get("owner") != self._owner:
            raise NotLocked(key)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise NotLocked(key) from e
        except OSError as e:
            raise StorageUnavailable(f"unlock({key!r}) failed: {e}") from e

    # --- Internal Helpers ---

    def _key_path(self, key: str) -> Path:
        """Map a key onto its path below ``keys/``.

        Raises:
            InvalidKey: If the key is malformed or contains a NUL byte.
        """
        keyspace.validate_key(key)
        if "\x00" in key:
            raise InvalidKey(key, "NUL byte")
        return self._keys_dir.joinpath(*key.split(keyspace.SEPARATOR))

    def _move_into_place(self, source: Path, target: Path) -> None:
        # a concurrent delete may prune the parent between mkdir and replace
        for attempt in range(_MOVE_ATTEMPTS):
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.replace(source, target)
            except FileNotFoundError:
                if attempt == _MOVE_ATTEMPTS - 1:
                    raise
                continue
            return

    def _prune_empty_parents(self, path: Path) -> None:
        parent = path.parent
        while parent != self._keys_dir:
            try:
                parent.rmdir()
            except OSError:
                # not empty, or already gone
                return
            parent = parent.parent

    def _lock_path(self, key: str) -> Path:
        return self._locks_dir / f"{quote(key, safe='')}.lock"

    @staticmethod
    def _stat_path(key: str, path: Path) -> os.stat_result:
        try:
            return path.stat()
        except _MISSING as e:
            raise NotFound(key) from e
        except OSError as e:
            raise StorageUnavailable(f"stat({key!r}) failed: {e}") from e

    def _write_lock_meta(self, key: str, path: Path, fd: int) -> None:
        meta = {
            "owner": self._owner,
            "pid": os.getpid(),
            "created": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(meta, f)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise StorageUnavailable(f"lock({key!r}) failed: {e}") from e

    @staticmethod
    def _read_lock_meta(path: Path) -> dict[str, Any]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageUnavailable(f"cannot read lock file {path}: {e}") from e
        try:
            meta = json.loads(raw)
        except ValueError:
            # creator has not finished writing it yet
            return {}
        return meta if isinstance(meta, dict) else {}

    def _break_if_stale(self, path: Path) -> bool:
        """Remove the lock file at `path` if it is abandoned.

        Returns:
            bool: True if the caller should retry immediately (the lock file
            was removed, or vanished on its own).
        """
        try:
            seen = path.stat()
        except FileNotFoundError:
            return True
        except OSError as e:
            raise StorageUnavailable(f"cannot stat lock file {path}: {e}") from e
        age = time.time() - seen.st_mtime
        if age <= self.stale_after:
            return False
        logger.warning("Breaking stale lock %s (age %.0fs)", path.name, age)
        self._remove_stale_lock(path, seen)
        return True

    def _remove_stale_lock(self, path: Path, seen: os.stat_result) -> None:
        """Delete the lock file at `path` only if it is still the file `seen`.

        The file is first renamed to a private name, so a concurrent waiter
        that already replaced the stale lock with its own is never deleted: a
        renamed file that turns out to be a different one is linked back.
        """
        claimed = path.with_name(f"{path.name}.{new_owner_token()}.stale")
        try:
            os.rename(path, claimed)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageUnavailable(f"cannot break lock file {path}: {e}") from e
        try:
            now = claimed.stat()
            if (now.st_dev, now.st_ino, now.st_mtime_ns) == (
                seen.st_dev,
                seen.st_ino,
                seen.st_mtime_ns,
            ):
                return
            try:
                os.link(claimed, path)
            except FileExistsError:
                logger.warning(
                    "Lock %s was re-created while being restored", path.name
                )
            except OSError as e:
                raise StorageUnavailable(
                    f"cannot restore lock file {path}: {e}"
                ) from e
        finally:
            claimed.unlink(missing_ok=True)
